"""Path utilities shared by parsers, the diff filter and adapters."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional, Union

from scanweave.core.logging import get_logger
from scanweave.core.subprocess_runner import DANGEROUS_CHARS

LOGGER = get_logger(__name__)

FILE_URI_PREFIX = "file://"


def normalize_path(path: str, work_dir: Optional[Union[str, Path]] = None) -> str:
    """Canonicalize a tool-reported path.

    Strips ``file://`` prefixes, converts backslashes to forward slashes,
    removes the scan working directory prefix, then strips leading ``./``
    and ``/`` so the result is relative to the scanned target.

    Args:
        path: Path or URI as reported by a tool.
        work_dir: Directory the tool scanned, if known.

    Returns:
        Normalized relative path ('' for an empty input).
    """
    if not path:
        return ""

    normalized = path
    if normalized.startswith(FILE_URI_PREFIX):
        normalized = normalized[len(FILE_URI_PREFIX):]
    normalized = normalized.replace("\\", "/")

    if work_dir:
        prefix = str(work_dir).replace("\\", "/").rstrip("/")
        if prefix and (normalized == prefix or normalized.startswith(prefix + "/")):
            normalized = normalized[len(prefix):]
        else:
            # Tools may report the path without the leading slash of the prefix.
            bare = prefix.lstrip("/")
            if bare and normalized.startswith(bare + "/"):
                normalized = normalized[len(bare):]

    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def simplify_exclude_pattern(pattern: str) -> Optional[str]:
    """Reduce a gitignore-style pattern to a plain path for CLI exclude flags.

    ``**/node_modules/**`` becomes ``node_modules``. Negations, comments and
    patterns that still contain glob or shell metacharacters return None.
    """
    value = pattern.strip()
    if not value or value.startswith("#") or value.startswith("!"):
        return None
    while value.startswith("**/"):
        value = value[3:]
    while value.endswith("/**"):
        value = value[:-3]
    value = value.strip("/")
    if not value or DANGEROUS_CHARS.search(value):
        return None
    return value


def exclude_args(patterns: List[str]) -> List[str]:
    """Simplify patterns, dropping the ones no CLI flag can express."""
    result: List[str] = []
    for pattern in patterns:
        simplified = simplify_exclude_pattern(pattern)
        if simplified is None:
            LOGGER.debug(f"Skipping exclude pattern not expressible as a path: {pattern}")
            continue
        if simplified not in result:
            result.append(simplified)
    return result


def as_list(value: Any) -> List[str]:
    """Read a list option that YAML may give as a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if not isinstance(value, (list, tuple, set, frozenset)):
        return [str(value)]
    return [str(v) for v in value if v]
