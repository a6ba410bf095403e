"""Unified diff parsing and diff-based finding filtering."""

from scanweave.diff.filter import (
    DEFAULT_CONTEXT_LINES,
    files_with_findings,
    filter_findings_by_diff,
    find_file_change,
)
from scanweave.diff.models import DiffData, FileChange, Hunk, LineRange
from scanweave.diff.parser import parse_diff

__all__ = [
    "DEFAULT_CONTEXT_LINES",
    "DiffData",
    "FileChange",
    "Hunk",
    "LineRange",
    "files_with_findings",
    "filter_findings_by_diff",
    "find_file_change",
    "parse_diff",
]
