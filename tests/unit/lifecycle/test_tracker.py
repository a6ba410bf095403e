"""Tests for fingerprint-based lifecycle tracking."""

from __future__ import annotations

from datetime import datetime, timezone

from scanweave.core.models import NormalizedFinding, Severity
from scanweave.lifecycle.tracker import (
    FindingState,
    PriorFinding,
    classify_findings,
    count_by_severity,
    count_by_tool,
    deduplicate_findings,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _finding(fingerprint: str, tool: str = "semgrep", severity: Severity = Severity.MEDIUM) -> NormalizedFinding:
    return NormalizedFinding(
        source_tool=tool,
        rule_id="rule",
        severity=severity,
        title=fingerprint,
        fingerprint=fingerprint,
    )


class TestDeduplicate:
    """Tests for deduplicate_findings."""

    def test_first_occurrence_wins(self) -> None:
        """Later findings with a seen fingerprint are dropped."""
        first = _finding("a", tool="semgrep")
        findings = [first, _finding("b"), _finding("a", tool="bandit")]
        unique = deduplicate_findings(findings)
        assert [f.fingerprint for f in unique] == ["a", "b"]
        assert unique[0] is first


class TestClassifyFindings:
    """Tests for classify_findings."""

    def test_categories(self) -> None:
        """Each current finding lands in exactly one category."""
        previous = [
            PriorFinding("open-one", FindingState.OPEN),
            PriorFinding("triaged-one", FindingState.TRIAGED),
            PriorFinding("fixed-one", FindingState.RESOLVED),
            PriorFinding("gone", FindingState.OPEN),
        ]
        current = [_finding("open-one"), _finding("triaged-one"), _finding("fixed-one"), _finding("brand-new")]

        report = classify_findings(current, previous, now=NOW)

        assert [f.fingerprint for f in report.new] == ["brand-new"]
        assert [f.fingerprint for f in report.still_open] == ["open-one", "triaged-one"]
        assert [f.fingerprint for f in report.redetected] == ["fixed-one"]
        assert [p.fingerprint for p in report.resolved] == ["gone"]

    def test_resolved_records_timestamps(self) -> None:
        """Resolved findings keep first_seen and get last_seen = now."""
        first_seen = datetime(2025, 12, 1, tzinfo=timezone.utc)
        report = classify_findings([], [PriorFinding("gone", FindingState.OPEN, first_seen=first_seen)], now=NOW)
        resolved = report.resolved[0]
        assert resolved.status == FindingState.RESOLVED
        assert resolved.first_seen == first_seen
        assert resolved.last_seen == NOW

    def test_already_resolved_not_resolved_again(self) -> None:
        """A resolved prior finding that stays absent is not reported."""
        report = classify_findings([], [PriorFinding("old", FindingState.RESOLVED)], now=NOW)
        assert report.resolved == []

    def test_no_history_everything_new(self) -> None:
        """Without previous findings every finding is new."""
        report = classify_findings([_finding("a"), _finding("b")], [], now=NOW)
        assert len(report.new) == 2
        assert report.resolved == []

    def test_duplicates_counted_once(self) -> None:
        """Duplicate fingerprints in the current scan are classified once."""
        report = classify_findings([_finding("a"), _finding("a")], [], now=NOW)
        assert len(report.new) == 1

    def test_fingerprints_view(self) -> None:
        """The fingerprint view lists each category."""
        report = classify_findings([_finding("a")], [PriorFinding("b")], now=NOW)
        assert report.fingerprints() == {
            "new": ["a"],
            "still_open": [],
            "redetected": [],
            "resolved": ["b"],
        }


class TestPriorFinding:
    """Tests for PriorFinding.from_dict."""

    def test_from_dict(self) -> None:
        """Stored records parse status and timestamps."""
        prior = PriorFinding.from_dict(
            {"fingerprint": "x", "status": "triaged", "first_seen": "2025-12-01T00:00:00+00:00"}
        )
        assert prior.status == FindingState.TRIAGED
        assert prior.first_seen == datetime(2025, 12, 1, tzinfo=timezone.utc)
        assert prior.last_seen is None

    def test_defaults_to_open(self) -> None:
        """A record without a status is open."""
        assert PriorFinding.from_dict({"fingerprint": "x"}).status == FindingState.OPEN


class TestCounts:
    """Tests for count helpers."""

    def test_count_by_severity_includes_zeroes(self) -> None:
        """Every severity appears in the counts."""
        counts = count_by_severity([_finding("a", severity=Severity.HIGH)])
        assert counts == {"critical": 0, "high": 1, "medium": 0, "low": 0, "info": 0}

    def test_count_by_tool(self) -> None:
        """Findings are counted per source tool."""
        counts = count_by_tool([_finding("a", "trivy"), _finding("b", "trivy"), _finding("c", "gosec")])
        assert counts == {"trivy": 2, "gosec": 1}
