"""Filter findings down to the regions a diff touched."""

from __future__ import annotations

import posixpath
from typing import Iterable, List, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import NormalizedFinding
from scanweave.core.paths import normalize_path
from scanweave.diff.models import DiffData, FileChange

LOGGER = get_logger(__name__)

DEFAULT_CONTEXT_LINES = 3


def find_file_change(diff: DiffData, path: str) -> Optional[FileChange]:
    """Locate the diff entry for a finding path.

    Tries, in order: exact match after separator normalization, a suffix
    match in either direction on a path boundary, then a basename match.
    """
    normalized = normalize_path(path)
    if not normalized:
        return None

    change = diff.files.get(normalized)
    if change is not None:
        return change

    for diff_path, candidate in diff.files.items():
        if normalized.endswith("/" + diff_path) or diff_path.endswith("/" + normalized):
            return candidate

    basename = posixpath.basename(normalized)
    for diff_path, candidate in diff.files.items():
        if posixpath.basename(diff_path) == basename:
            return candidate
    return None


def _intersects(finding: NormalizedFinding, change: FileChange, context: int) -> bool:
    start = finding.start_line
    if start <= 0:
        # File-level finding (no line); the file itself changed.
        return True
    end = finding.end_line if finding.end_line is not None and finding.end_line >= start else start

    if any(line in change.added_lines for line in range(start, end + 1)):
        return True
    return any(r.overlaps(start, end, context) for r in change.modified_line_ranges)


def filter_findings_by_diff(
    findings: Iterable[NormalizedFinding],
    diff: DiffData,
    context: int = DEFAULT_CONTEXT_LINES,
) -> List[NormalizedFinding]:
    """Keep only findings that intersect changed regions.

    A finding is kept when any line of its span was added, or when its
    span overlaps a modified range widened by ``context`` lines. Findings
    in files the diff does not mention are dropped. Filtering is pure, so
    re-filtering a filtered list returns it unchanged.

    Args:
        findings: Normalized findings.
        diff: Parsed diff.
        context: Lines of slack around each modified range.

    Returns:
        Findings that intersect the diff, in input order.
    """
    kept: List[NormalizedFinding] = []
    dropped = 0
    for finding in findings:
        change = find_file_change(diff, finding.file_path)
        if change is not None and _intersects(finding, change, context):
            kept.append(finding)
        else:
            dropped += 1

    if dropped:
        LOGGER.info(f"Diff filter kept {len(kept)} finding(s), dropped {dropped}")
    return kept


def files_with_findings(findings: Iterable[NormalizedFinding], diff: DiffData) -> List[str]:
    """Return diff paths that have at least one finding, sorted."""
    paths = set()
    for finding in findings:
        change = find_file_change(diff, finding.file_path)
        if change is not None:
            paths.add(change.path)
    return sorted(paths)
