"""Cross-scan finding lifecycle.

Relies only on fingerprints: it has no knowledge of tool internals.
"""

from scanweave.lifecycle.tracker import (
    FindingState,
    LifecycleReport,
    PriorFinding,
    classify_findings,
    count_by_severity,
    count_by_tool,
    deduplicate_findings,
)

__all__ = [
    "FindingState",
    "LifecycleReport",
    "PriorFinding",
    "classify_findings",
    "count_by_severity",
    "count_by_tool",
    "deduplicate_findings",
]
