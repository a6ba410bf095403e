"""Diff data model.

Serialization turns line sets into sorted lists so a DiffData survives a
JSON round trip unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Set


@dataclass(frozen=True)
class LineRange:
    """Inclusive range of lines on the new side of a diff."""

    start: int
    end: int

    def overlaps(self, start: int, end: int, context: int = 0) -> bool:
        """True if [start, end] intersects this range widened by ``context``."""
        low = max(1, self.start - context)
        high = self.end + context
        return start <= high and end >= low


@dataclass(frozen=True)
class Hunk:
    """A ``@@ -a,b +c,d @@`` hunk header."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int


@dataclass
class FileChange:
    """Changes to one file on the new side of a diff."""

    path: str
    hunks: List[Hunk] = field(default_factory=list)
    added_lines: Set[int] = field(default_factory=set)
    modified_line_ranges: List[LineRange] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "hunks": [
                {
                    "old_start": h.old_start,
                    "old_count": h.old_count,
                    "new_start": h.new_start,
                    "new_count": h.new_count,
                }
                for h in self.hunks
            ],
            "added_lines": sorted(self.added_lines),
            "modified_line_ranges": [
                {"start": r.start, "end": r.end} for r in self.modified_line_ranges
            ],
            "additions": self.additions,
            "deletions": self.deletions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileChange":
        return cls(
            path=data["path"],
            hunks=[Hunk(**h) for h in data.get("hunks", [])],
            added_lines=set(data.get("added_lines", [])),
            modified_line_ranges=[LineRange(**r) for r in data.get("modified_line_ranges", [])],
            additions=data.get("additions", 0),
            deletions=data.get("deletions", 0),
        )


@dataclass
class DiffData:
    """Parsed unified diff keyed by new-side file path."""

    files: Dict[str, FileChange] = field(default_factory=dict)
    total_additions: int = 0
    total_deletions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": {path: change.to_dict() for path, change in self.files.items()},
            "total_additions": self.total_additions,
            "total_deletions": self.total_deletions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiffData":
        return cls(
            files={
                path: FileChange.from_dict(change)
                for path, change in data.get("files", {}).items()
            },
            total_additions=data.get("total_additions", 0),
            total_deletions=data.get("total_deletions", 0),
        )
