"""Configuration validation for scanweave.

Validates core configuration keys and warns on unknown keys.
Tool-specific options are passed through without validation, except for
the few values adapters would otherwise silently replace with defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import get_close_matches
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml

from scanweave.core.logging import get_logger

LOGGER = get_logger(__name__)


class ValidationSeverity(Enum):
    """Severity level for validation issues."""

    ERROR = "error"  # Config will fail at runtime
    WARNING = "warning"  # Likely mistake but config usable


@dataclass
class ConfigValidationIssue:
    """A validation issue for configuration with severity."""

    message: str
    source: str
    severity: ValidationSeverity
    key: Optional[str] = None
    suggestion: Optional[str] = None


@dataclass
class ConfigValidationWarning:
    """A validation warning for configuration."""

    message: str
    source: str
    key: Optional[str] = None
    suggestion: Optional[str] = None
    is_error: bool = False


VALID_TOP_LEVEL_KEYS: Set[str] = {
    "version",
    "project",
    "pipeline",
    "tools",
    "categories",
    "targets",
    "rate_limit",
    "diff",
    "ignore",
    "output",
    "fail_on",
}

VALID_PROJECT_KEYS: Set[str] = {"name", "languages"}
VALID_PIPELINE_KEYS: Set[str] = {"max_workers", "tool_timeout", "probe_timeout", "output_limit"}
VALID_CATEGORY_KEYS: Set[str] = {"sast", "sca", "secrets", "iac", "dast"}
VALID_TARGET_KEYS: Set[str] = {"urls", "images"}
VALID_DIFF_KEYS: Set[str] = {"context_lines"}
VALID_OUTPUT_KEYS: Set[str] = {"format"}

VALID_TOOLS: Set[str] = {
    "trivy",
    "semgrep",
    "checkov",
    "gosec",
    "gitleaks",
    "bandit",
    "trufflehog",
    "katana",
    "nuclei",
    "zap",
}

VALID_SEVERITIES: Set[str] = {"critical", "high", "medium", "low", "info"}
VALID_RATE_LIMITS: Set[str] = {"low", "medium", "high"}
VALID_SCAN_MODES: Set[str] = {"quick", "standard", "full"}
VALID_OUTPUT_FORMATS: Set[str] = {"json", "sarif", "summary"}

POSITIVE_INT_KEYS: Set[str] = {"max_workers", "tool_timeout", "probe_timeout", "output_limit"}


def validate_config(data: Dict[str, Any], source: str) -> List[ConfigValidationWarning]:
    """Validate a configuration dictionary.

    Does not raise; every problem is logged and returned.

    Args:
        data: Config dictionary to validate.
        source: Source file path for warning messages.

    Returns:
        List of validation warnings.
    """
    warnings: List[ConfigValidationWarning] = []

    if not isinstance(data, dict):
        warnings.append(ConfigValidationWarning(
            message=f"Config must be a mapping, got {type(data).__name__}",
            source=source,
            is_error=True,
        ))
        return warnings

    _check_keys(data, VALID_TOP_LEVEL_KEYS, source, "", warnings)

    for section, valid_keys in (
        ("project", VALID_PROJECT_KEYS),
        ("pipeline", VALID_PIPELINE_KEYS),
        ("categories", VALID_CATEGORY_KEYS),
        ("targets", VALID_TARGET_KEYS),
        ("diff", VALID_DIFF_KEYS),
        ("output", VALID_OUTPUT_KEYS),
    ):
        value = data.get(section)
        if value is None:
            continue
        if not isinstance(value, dict):
            warnings.append(ConfigValidationWarning(
                message=f"'{section}' must be a mapping, got {type(value).__name__}",
                source=source,
                key=section,
                is_error=True,
            ))
            continue
        _check_keys(value, valid_keys, source, f"{section}.", warnings)

    pipeline = data.get("pipeline")
    if isinstance(pipeline, dict):
        for key in POSITIVE_INT_KEYS & set(pipeline):
            value = pipeline[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                warnings.append(ConfigValidationWarning(
                    message=f"'pipeline.{key}' must be a positive integer, got {value!r}",
                    source=source,
                    key=f"pipeline.{key}",
                    is_error=True,
                ))

    _check_choice(data.get("rate_limit"), VALID_RATE_LIMITS, "rate_limit", source, warnings)
    _check_choice(data.get("fail_on"), VALID_SEVERITIES | {"none"}, "fail_on", source, warnings)
    output = data.get("output")
    if isinstance(output, dict):
        _check_choice(output.get("format"), VALID_OUTPUT_FORMATS, "output.format", source, warnings)

    ignore = data.get("ignore")
    if ignore is not None and not isinstance(ignore, list):
        warnings.append(ConfigValidationWarning(
            message="'ignore' must be a list of patterns",
            source=source,
            key="ignore",
            is_error=True,
        ))

    _validate_tools(data.get("tools"), source, warnings)

    for warning in warnings:
        _log_warning(warning)
    return warnings


def _validate_tools(tools: Any, source: str, warnings: List[ConfigValidationWarning]) -> None:
    if tools is None:
        return
    if isinstance(tools, list):
        names = [t for t in tools if isinstance(t, str)]
        options: Dict[str, Any] = {}
    elif isinstance(tools, dict):
        names = [str(t) for t in tools]
        options = tools
    else:
        warnings.append(ConfigValidationWarning(
            message="'tools' must be a mapping or a list of tool names",
            source=source,
            key="tools",
            is_error=True,
        ))
        return

    for name in names:
        if name.lower() not in VALID_TOOLS:
            warnings.append(ConfigValidationWarning(
                message=f"Unknown tool '{name}'",
                source=source,
                key=f"tools.{name}",
                suggestion=_suggest_key(name.lower(), VALID_TOOLS),
            ))

    for name, tool_data in options.items():
        if not isinstance(tool_data, dict):
            continue
        _check_choice(tool_data.get("rate_limit"), VALID_RATE_LIMITS, f"tools.{name}.rate_limit", source, warnings)
        _check_choice(tool_data.get("scan_mode"), VALID_SCAN_MODES, f"tools.{name}.scan_mode", source, warnings)


def _check_keys(
    data: Dict[str, Any],
    valid_keys: Set[str],
    source: str,
    prefix: str,
    warnings: List[ConfigValidationWarning],
) -> None:
    for key in data:
        if key not in valid_keys:
            warnings.append(ConfigValidationWarning(
                message=f"Unknown key '{prefix}{key}'",
                source=source,
                key=f"{prefix}{key}",
                suggestion=_suggest_key(str(key), valid_keys),
            ))


def _check_choice(
    value: Any,
    valid: Set[str],
    key: str,
    source: str,
    warnings: List[ConfigValidationWarning],
) -> None:
    if value is None:
        return
    if not isinstance(value, str) or value.lower() not in valid:
        warnings.append(ConfigValidationWarning(
            message=f"Invalid value for '{key}': {value!r}",
            source=source,
            key=key,
            suggestion=_suggest_key(str(value).lower(), valid),
            is_error=True,
        ))


def _suggest_key(invalid_key: str, valid_keys: Set[str]) -> Optional[str]:
    """Suggest the closest valid key for a typo, or None."""
    matches = get_close_matches(invalid_key, sorted(valid_keys), n=1, cutoff=0.6)
    return matches[0] if matches else None


def _log_warning(warning: ConfigValidationWarning) -> None:
    msg = f"{warning.message} in {warning.source}"
    if warning.suggestion:
        msg += f" (did you mean '{warning.suggestion}'?)"
    LOGGER.warning(msg)


def validate_config_file(config_path: Path) -> Tuple[bool, List[ConfigValidationIssue]]:
    """Validate a configuration file from disk.

    Checks file existence, YAML syntax, and configuration semantics.

    Returns:
        Tuple of (is_valid, issues) where is_valid is False if any errors exist.
    """
    issues: List[ConfigValidationIssue] = []
    source = str(config_path)

    if not config_path.exists():
        issues.append(ConfigValidationIssue(
            message=f"Configuration file not found: {config_path}",
            source=source,
            severity=ValidationSeverity.ERROR,
        ))
        return False, issues

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        issues.append(ConfigValidationIssue(
            message=f"Invalid YAML syntax: {e}",
            source=source,
            severity=ValidationSeverity.ERROR,
        ))
        return False, issues

    if data is None:
        issues.append(ConfigValidationIssue(
            message="Configuration file is empty",
            source=source,
            severity=ValidationSeverity.WARNING,
        ))
        return True, issues

    for warning in validate_config(data, source):
        issues.append(ConfigValidationIssue(
            message=warning.message,
            source=warning.source,
            severity=ValidationSeverity.ERROR if warning.is_error else ValidationSeverity.WARNING,
            key=warning.key,
            suggestion=warning.suggestion,
        ))

    has_errors = any(issue.severity == ValidationSeverity.ERROR for issue in issues)
    return not has_errors, issues
