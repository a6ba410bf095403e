"""Argument parser construction for scanweave CLI.

This module builds the argument parser with subcommands:
- scanweave scan     - Run security scanners against a project
- scanweave status   - Show which tools are available
- scanweave validate - Check a configuration file
"""

from __future__ import annotations

import argparse
from pathlib import Path

from scanweave.config.validation import VALID_OUTPUT_FORMATS
from scanweave.core.models import Severity


def _add_global_options(parser: argparse.ArgumentParser) -> None:
    """Add global options available to all commands."""
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show scanweave version and exit.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (info-level) logging.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging output to errors only.",
    )


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected zero or a positive integer, got {value}")
    return number


def _build_scan_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'scan' subcommand parser."""
    scan_parser = subparsers.add_parser(
        "scan",
        help="Run security scanners against a project.",
        description=(
            "Run the selected (or auto-detected) scanners in parallel and "
            "report their normalized findings."
        ),
    )

    # Target options
    target_group = scan_parser.add_argument_group("targets")
    target_group.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to scan (default: current directory).",
    )
    target_group.add_argument(
        "--tools",
        metavar="A,B",
        help="Comma-separated tools to run instead of auto-detection.",
    )
    target_group.add_argument(
        "--image",
        action="append",
        dest="images",
        metavar="IMAGE",
        help="Container image to scan (can be specified multiple times).",
    )
    target_group.add_argument(
        "--target-url",
        action="append",
        dest="target_urls",
        metavar="URL",
        help="Live endpoint for DAST tools (can be specified multiple times).",
    )

    # Diff and lifecycle options
    diff_group = scan_parser.add_argument_group("diff")
    diff_group.add_argument(
        "--diff",
        metavar="FILE",
        type=Path,
        help="Unified diff; only findings on changed lines are reported.",
    )
    diff_group.add_argument(
        "--context",
        metavar="N",
        type=_non_negative_int,
        default=None,
        help="Lines of context around modified ranges (default: 3).",
    )
    diff_group.add_argument(
        "--baseline",
        metavar="FILE",
        type=Path,
        help="JSON report of a previous scan to classify findings against.",
    )

    # Output options
    output_group = scan_parser.add_argument_group("output")
    output_group.add_argument(
        "--format",
        choices=sorted(VALID_OUTPUT_FORMATS),
        default=None,
        help="Output format (default: summary, or as specified in config file).",
    )
    output_group.add_argument(
        "--output", "-o",
        metavar="PATH",
        type=Path,
        help="Write the report to PATH instead of stdout; a directory gets scanweave-<scan id>.<ext>.",
    )

    # Configuration options
    config_group = scan_parser.add_argument_group("configuration")
    config_group.add_argument(
        "--fail-on",
        choices=[s.value for s in Severity],
        default=None,
        help="Exit with code 1 if findings at or above this severity are found.",
    )
    config_group.add_argument(
        "--config",
        metavar="PATH",
        type=Path,
        help="Path to config file (default: .scanweave.yml in project root).",
    )

    # Execution options
    exec_group = scan_parser.add_argument_group("execution")
    exec_group.add_argument(
        "--max-workers",
        metavar="N",
        type=_positive_int,
        default=None,
        help="Maximum number of tools running at once (default: 4).",
    )
    exec_group.add_argument(
        "--sequential",
        action="store_true",
        help="Disable parallel tool execution (for debugging).",
    )
    exec_group.add_argument(
        "--scan-id",
        metavar="ID",
        help="Identifier for this scan (default: generated).",
    )


def _build_status_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'status' subcommand parser."""
    subparsers.add_parser(
        "status",
        help="Show tool availability.",
        description="Probe every scanner adapter and print its version or why it is unavailable.",
    )


def _build_validate_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'validate' subcommand parser."""
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a configuration file.",
        description="Check a scanweave configuration file for errors and typos.",
    )
    validate_parser.add_argument(
        "--config",
        metavar="PATH",
        type=Path,
        help="Config file to validate (default: .scanweave.yml in the current directory).",
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on warnings as well as errors.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser for scanweave CLI.

    Returns:
        Configured ArgumentParser instance with subcommands.
    """
    parser = argparse.ArgumentParser(
        prog="scanweave",
        description="scanweave - orchestrate external security scanners.",
        epilog=(
            "Examples:\n"
            "  scanweave scan                         # Auto-detect tools and scan\n"
            "  scanweave scan --tools trivy,semgrep   # Run specific tools\n"
            "  scanweave scan --diff changes.patch    # Report findings on changed lines\n"
            "  scanweave status                       # Show tool availability\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    _add_global_options(parser)

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands:",
        metavar="COMMAND",
    )

    _build_scan_parser(subparsers)
    _build_status_parser(subparsers)
    _build_validate_parser(subparsers)

    return parser
