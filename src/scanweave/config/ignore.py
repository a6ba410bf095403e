"""Gitignore-style ignore patterns.

Patterns come from a .scanweaveignore file and the config ``ignore``
list. They are passed to adapters as exclusion flags and applied again
to normalized findings, since not every tool honors its exclude flags.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import pathspec

from scanweave.core.logging import get_logger
from scanweave.core.models import NormalizedFinding
from scanweave.core.paths import normalize_path

LOGGER = get_logger(__name__)

SCANWEAVEIGNORE_NAMES = [".scanweaveignore"]


class IgnorePatterns:
    """Manages ignore patterns from multiple sources."""

    def __init__(self, patterns: List[str], source: str = "config") -> None:
        self._source = source
        self._raw_patterns = list(patterns)
        clean_patterns = self.get_exclude_patterns()
        self._spec = pathspec.PathSpec.from_lines(
            pathspec.patterns.GitWildMatchPattern,
            clean_patterns,
        )
        if clean_patterns:
            LOGGER.debug(f"Loaded {len(clean_patterns)} ignore patterns from {source}")

    @property
    def source(self) -> str:
        return self._source

    def __bool__(self) -> bool:
        return bool(self.get_exclude_patterns())

    def matches(self, path: str) -> bool:
        """Check whether a target-relative path matches any pattern."""
        rel = normalize_path(path)
        return bool(rel) and self._spec.match_file(rel)

    def get_exclude_patterns(self) -> List[str]:
        """Patterns without blanks or comments, for scanner exclude flags."""
        return [p.strip() for p in self._raw_patterns if p.strip() and not p.strip().startswith("#")]

    def filter_findings(self, findings: Iterable[NormalizedFinding]) -> Tuple[List[NormalizedFinding], int]:
        """Drop findings located in ignored files.

        Findings without a file path (e.g. URL or image findings whose
        location is not a path) are never dropped.

        Returns:
            Tuple of (kept findings, number removed).
        """
        kept: List[NormalizedFinding] = []
        removed = 0
        for finding in findings:
            if finding.file_path and "://" not in finding.file_path and self.matches(finding.file_path):
                removed += 1
                continue
            kept.append(finding)
        if removed:
            LOGGER.debug(f"Filtered {removed} findings via ignore patterns")
        return kept, removed

    @classmethod
    def from_file(cls, file_path: Path) -> Optional["IgnorePatterns"]:
        """Load patterns from a file, or None if it doesn't exist."""
        if not file_path.exists():
            return None
        try:
            content = file_path.read_text(encoding="utf-8")
        except OSError as e:
            LOGGER.warning(f"Failed to load ignore file {file_path}: {e}")
            return None
        return cls(content.splitlines(), source=str(file_path))

    @classmethod
    def merge(cls, *pattern_sets: Optional["IgnorePatterns"]) -> "IgnorePatterns":
        """Merge multiple IgnorePatterns instances, in order."""
        all_patterns: List[str] = []
        sources: List[str] = []
        for ps in pattern_sets:
            if ps is not None:
                all_patterns.extend(ps._raw_patterns)
                sources.append(ps._source)
        return cls(all_patterns, source="+".join(sources) if sources else "empty")


def find_scanweaveignore(project_root: Path) -> Optional[Path]:
    """Find a .scanweaveignore file in the project root."""
    for name in SCANWEAVEIGNORE_NAMES:
        ignore_path = project_root / name
        if ignore_path.exists():
            return ignore_path
    return None


def load_ignore_patterns(project_root: Path, config_patterns: List[str]) -> IgnorePatterns:
    """Load and merge patterns from .scanweaveignore and config.ignore."""
    ignore_file = find_scanweaveignore(project_root)
    file_patterns = IgnorePatterns.from_file(ignore_file) if ignore_file else None
    config_ignore = IgnorePatterns(config_patterns, source="config.ignore") if config_patterns else None
    return IgnorePatterns.merge(file_patterns, config_ignore)
