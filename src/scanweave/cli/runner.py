"""CLI runner orchestration.

This module handles command dispatch and execution for the scanweave CLI.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from typing import Dict, Iterable, Optional

from scanweave.cli.arguments import build_parser
from scanweave.cli.commands import Command, ScanCommand, StatusCommand, ValidateCommand
from scanweave.cli.exit_codes import EXIT_INVALID_USAGE, EXIT_SUCCESS
from scanweave.core.logging import configure_logging, get_logger

LOGGER = get_logger(__name__)


def get_version() -> str:
    """Get scanweave version.

    Returns:
        Version string from package metadata or fallback.
    """
    try:
        return version("scanweave")
    except PackageNotFoundError:
        # Fallback for editable installs that have not yet built metadata.
        from scanweave import __version__
        return __version__


class CLIRunner:
    """Orchestrates CLI execution with subcommand dispatch."""

    def __init__(self) -> None:
        self.parser = build_parser()
        self._version = get_version()
        self.scan_cmd = ScanCommand(version=self._version)
        self.status_cmd = StatusCommand(version=self._version)
        self.validate_cmd = ValidateCommand(version=self._version)
        self.commands: Dict[str, Command] = {
            cmd.name: cmd for cmd in (self.scan_cmd, self.status_cmd, self.validate_cmd)
        }

    def run(self, argv: Optional[Iterable[str]] = None) -> int:
        """Run the CLI.

        Args:
            argv: Command-line arguments (defaults to sys.argv).

        Returns:
            Exit code.
        """
        argv_list = list(argv) if argv is not None else None
        try:
            args = self.parser.parse_args(argv_list)
        except SystemExit as e:
            # argparse exits 0 for --help and 2 for usage errors.
            return EXIT_SUCCESS if e.code in (0, None) else EXIT_INVALID_USAGE

        configure_logging(
            debug=args.debug,
            verbose=args.verbose,
            quiet=args.quiet,
        )

        if args.version:
            print(self._version)
            return EXIT_SUCCESS

        command = self.commands.get(getattr(args, "command", None) or "")
        if command is None:
            self.parser.print_help()
            return EXIT_SUCCESS
        return command.run(args)
