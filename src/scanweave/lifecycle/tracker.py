"""Fingerprint-based finding lifecycle tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import NormalizedFinding, Severity, utcnow

LOGGER = get_logger(__name__)


class FindingState(str, Enum):
    """Persisted state of a previously seen finding."""

    OPEN = "open"
    TRIAGED = "triaged"
    RESOLVED = "resolved"


ACTIVE_STATES = frozenset({FindingState.OPEN, FindingState.TRIAGED})


@dataclass
class PriorFinding:
    """A finding as recorded by an earlier scan of the same target."""

    fingerprint: str
    status: FindingState = FindingState.OPEN
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriorFinding":
        """Build a prior finding from its stored record.

        Raises:
            ValueError: If the record has no fingerprint or an unknown
                status or timestamp.
        """
        if not isinstance(data, dict) or not data.get("fingerprint"):
            raise ValueError(f"Previous finding has no fingerprint: {data!r}")
        first = data.get("first_seen")
        last = data.get("last_seen")
        return cls(
            fingerprint=str(data["fingerprint"]),
            status=FindingState(data.get("status", FindingState.OPEN.value)),
            first_seen=datetime.fromisoformat(first) if first else None,
            last_seen=datetime.fromisoformat(last) if last else None,
        )


@dataclass
class LifecycleReport:
    """Classification of one scan's findings against the previous scan.

    Every current finding lands in exactly one of ``new``, ``still_open``
    or ``redetected``; ``resolved`` holds prior active findings that were
    not reported this time.
    """

    new: List[NormalizedFinding] = field(default_factory=list)
    still_open: List[NormalizedFinding] = field(default_factory=list)
    redetected: List[NormalizedFinding] = field(default_factory=list)
    resolved: List[PriorFinding] = field(default_factory=list)

    def fingerprints(self) -> Dict[str, List[str]]:
        return {
            "new": [f.fingerprint for f in self.new],
            "still_open": [f.fingerprint for f in self.still_open],
            "redetected": [f.fingerprint for f in self.redetected],
            "resolved": [p.fingerprint for p in self.resolved],
        }


def deduplicate_findings(findings: Iterable[NormalizedFinding]) -> List[NormalizedFinding]:
    """Drop findings whose fingerprint was already seen; first one wins."""
    seen = set()
    unique: List[NormalizedFinding] = []
    removed = 0
    for finding in findings:
        if finding.fingerprint in seen:
            removed += 1
            continue
        seen.add(finding.fingerprint)
        unique.append(finding)
    if removed:
        LOGGER.debug(f"Removed {removed} duplicate finding(s)")
    return unique


def classify_findings(
    current: Iterable[NormalizedFinding],
    previous: Iterable[PriorFinding],
    now: Optional[datetime] = None,
) -> LifecycleReport:
    """Classify current findings against the previous scan's finding set.

    Args:
        current: Findings from this scan (deduplicated by the caller or not).
        previous: Findings recorded for the same target before this scan.
        now: Timestamp applied to ``last_seen`` of resolved findings.

    Returns:
        LifecycleReport with new, still open, re-detected and resolved sets.
    """
    now = now or utcnow()
    prior_by_fp: Dict[str, PriorFinding] = {p.fingerprint: p for p in previous}
    report = LifecycleReport()
    seen = set()

    for finding in current:
        if finding.fingerprint in seen:
            continue
        seen.add(finding.fingerprint)
        prior = prior_by_fp.get(finding.fingerprint)
        if prior is None:
            report.new.append(finding)
        elif prior.status in ACTIVE_STATES:
            report.still_open.append(finding)
        else:
            report.redetected.append(finding)

    for fingerprint, prior in prior_by_fp.items():
        if prior.status in ACTIVE_STATES and fingerprint not in seen:
            report.resolved.append(
                PriorFinding(
                    fingerprint=fingerprint,
                    status=FindingState.RESOLVED,
                    first_seen=prior.first_seen,
                    last_seen=now,
                )
            )

    LOGGER.info(
        f"Lifecycle: {len(report.new)} new, {len(report.still_open)} still open, "
        f"{len(report.redetected)} re-detected, {len(report.resolved)} resolved"
    )
    return report


def count_by_severity(findings: Iterable[NormalizedFinding]) -> Dict[str, int]:
    """Count findings per severity, with every level present."""
    counts = {severity.value: 0 for severity in Severity}
    for finding in findings:
        counts[finding.severity.value] += 1
    return counts


def count_by_tool(findings: Iterable[NormalizedFinding]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for finding in findings:
        counts[finding.source_tool] = counts.get(finding.source_tool, 0) + 1
    return counts
