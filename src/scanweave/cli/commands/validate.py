"""``scanweave validate``: check a configuration file before a scan uses it.

Beyond the schema checks in :mod:`scanweave.config.validation`, a file
without errors is also checked against the installed adapters: tools
that scan URLs are useless without ``targets.urls`` and would only show
up as skipped in every report.
"""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from scanweave.cli.commands import Command
from scanweave.cli.exit_codes import EXIT_INVALID_USAGE, EXIT_ISSUES_FOUND, EXIT_SUCCESS
from scanweave.config.loader import (
    PROJECT_CONFIG_NAMES,
    ConfigError,
    dict_to_config,
    find_project_config,
    load_yaml_file,
)
from scanweave.config.validation import (
    ConfigValidationIssue,
    ValidationSeverity,
    validate_config_file,
)
from scanweave.core.models import InputKind
from scanweave.plugins.scanners import get_scanner_plugin

if TYPE_CHECKING:
    from scanweave.config.models import ScanweaveConfig


def check_targets(config: "ScanweaveConfig", source: str) -> List[ConfigValidationIssue]:
    """Warn about URL scanners that have nothing to scan."""
    if config.targets.urls:
        return []

    issues: List[ConfigValidationIssue] = []
    if config.categories.dast:
        issues.append(ConfigValidationIssue(
            message="DAST is enabled but targets.urls is empty",
            source=source,
            severity=ValidationSeverity.WARNING,
            key="categories.dast",
        ))
    for name in config.explicit_tools():
        plugin = get_scanner_plugin(name)
        if plugin is not None and InputKind.URL in plugin.input_kinds:
            issues.append(ConfigValidationIssue(
                message=f"'{name}' scans URLs but targets.urls is empty; it will be skipped",
                source=source,
                severity=ValidationSeverity.WARNING,
                key=f"tools.{name}",
            ))
    return issues


class ValidateCommand(Command):
    """Reports errors, typos and unusable tool settings in a config file."""

    @property
    def name(self) -> str:
        return "validate"

    def execute(self, args: Namespace, config: Optional["ScanweaveConfig"] = None) -> int:
        """Validate the given or discovered config file.

        Returns:
            EXIT_SUCCESS when usable, EXIT_ISSUES_FOUND on errors (or on
            warnings with ``--strict``), EXIT_INVALID_USAGE when no file
            is found.
        """
        config_path = getattr(args, "config", None)
        config_path = Path(config_path) if config_path else find_project_config(Path.cwd())
        if config_path is None:
            print("No configuration file found.")
            print(f"Looked for: {', '.join(PROJECT_CONFIG_NAMES)}")
            return EXIT_INVALID_USAGE
        if not config_path.exists():
            print(f"Configuration file not found: {config_path}")
            return EXIT_INVALID_USAGE

        print(f"Validating {config_path}...")
        valid, issues = validate_config_file(config_path)
        if valid:
            issues.extend(self._semantic_issues(config_path))

        errors = [i for i in issues if i.severity == ValidationSeverity.ERROR]
        warnings = [i for i in issues if i.severity == ValidationSeverity.WARNING]
        for title, group in (("Errors", errors), ("Warnings", warnings)):
            if group:
                print(f"\n{title} ({len(group)}):")
                for issue in group:
                    print(self._format_issue(issue))

        if errors:
            print(f"\nConfiguration is invalid ({len(errors)} error(s)).")
            return EXIT_ISSUES_FOUND
        if warnings and getattr(args, "strict", False):
            print(f"\nConfiguration has {len(warnings)} warning(s); failing because of --strict.")
            return EXIT_ISSUES_FOUND
        if warnings:
            print(f"\nConfiguration is valid with {len(warnings)} warning(s).")
        else:
            print("Configuration is valid.")
        return EXIT_SUCCESS

    def _semantic_issues(self, config_path: Path) -> List[ConfigValidationIssue]:
        try:
            config = dict_to_config(load_yaml_file(config_path))
        except ConfigError as e:
            return [ConfigValidationIssue(str(e), str(config_path), ValidationSeverity.ERROR)]
        return check_targets(config, str(config_path))

    @staticmethod
    def _format_issue(issue: ConfigValidationIssue) -> str:
        line = f"  - {issue.message}"
        if issue.key:
            line += f" [{issue.key}]"
        if issue.suggestion:
            line += f"\n    Did you mean '{issue.suggestion}'?"
        return line
