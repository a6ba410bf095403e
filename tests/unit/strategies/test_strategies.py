"""Tests for merge and phased execution strategies."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from scanweave.core.exceptions import ScanCancelledError
from scanweave.core.models import ExecutionResult, NormalizedFinding, ScanContext, Severity
from scanweave.core.streaming import CollectingStreamHandler, ProgressEventType
from scanweave.strategies.merge import (
    MergeStrategy,
    ScanPass,
    merge_pass_results,
    merge_sarif_documents,
    reduce_exit_codes,
)
from scanweave.strategies.phased import (
    BASELINE_TEMPLATES,
    PhasedStrategy,
    PhasePlan,
    detect_technologies,
    normalize_target_url,
    select_deep_templates,
)


def _sarif(rule_id: str) -> Dict[str, Any]:
    return {
        "version": "2.1.0",
        "runs": [{"tool": {"driver": {"name": "trivy"}}, "results": [{"ruleId": rule_id}]}],
    }


def _write(path: Path, document: Dict[str, Any]) -> Path:
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def _result(code: int, artifact: Optional[Path] = None, duration: int = 10, error: bool = False) -> ExecutionResult:
    return ExecutionResult(
        tool_name="trivy",
        exit_code=code,
        artifact_path=artifact,
        duration_ms=duration,
        error=error,
    )


def _finding(rule_id: str, title: str = "", **metadata: Any) -> NormalizedFinding:
    return NormalizedFinding(
        source_tool="nuclei",
        rule_id=rule_id,
        severity=Severity.INFO,
        title=title or rule_id,
        fingerprint=rule_id,
        metadata=dict(metadata),
    )


class TestReduceExitCodes:
    """Tests for reduce_exit_codes."""

    def test_all_success(self) -> None:
        """In-set codes reduce to the highest with no error."""
        assert reduce_exit_codes([0, 1], frozenset({0, 1})) == (1, False)

    def test_first_failure_wins(self) -> None:
        """The first out-of-set code is reported as an error."""
        assert reduce_exit_codes([0, 2, 3], frozenset({0, 1})) == (2, True)

    def test_success_set_zero_and_one_vs_zero_and_two(self) -> None:
        """The success set decides whether a code is an error."""
        assert reduce_exit_codes([0, 1], frozenset({0, 1}))[1] is False
        assert reduce_exit_codes([0, 1], frozenset({0, 2}))[1] is True

    def test_empty(self) -> None:
        """No passes reduce to exit code 0."""
        assert reduce_exit_codes([], frozenset({0})) == (0, False)


class TestMergePassResults:
    """Tests for merge_pass_results."""

    def test_runs_concatenated(self, tmp_path: Path) -> None:
        """Each readable pass contributes its runs."""
        results = [
            _result(0, _write(tmp_path / "a.sarif", _sarif("R1")), duration=5),
            _result(1, _write(tmp_path / "b.sarif", _sarif("R2")), duration=7),
        ]
        merged = merge_pass_results("trivy", results, frozenset({0, 1}), tmp_path / "merged.sarif")

        document = json.loads((tmp_path / "merged.sarif").read_text(encoding="utf-8"))
        assert [r["results"][0]["ruleId"] for r in document["runs"]] == ["R1", "R2"]
        assert merged.artifact_path == tmp_path / "merged.sarif"
        assert merged.duration_ms == 12
        assert merged.exit_code == 1
        assert merged.error is False

    def test_unreadable_pass_skipped(self, tmp_path: Path) -> None:
        """A missing pass artifact does not lose the others."""
        bad = tmp_path / "bad.sarif"
        bad.write_text("{", encoding="utf-8")
        results = [
            _result(0, _write(tmp_path / "a.sarif", _sarif("R1"))),
            _result(0, bad),
            _result(0, None),
        ]
        merge_pass_results("trivy", results, frozenset({0}), tmp_path / "merged.sarif")
        document = json.loads((tmp_path / "merged.sarif").read_text(encoding="utf-8"))
        assert len(document["runs"]) == 1

    def test_no_readable_pass(self, tmp_path: Path) -> None:
        """Without readable passes there is no merged artifact."""
        merged = merge_pass_results("trivy", [_result(2, None)], frozenset({0}), tmp_path / "m.sarif")
        assert merged.artifact_path is None
        assert merged.error is True
        assert not (tmp_path / "m.sarif").exists()

    def test_merge_documents_keeps_header(self) -> None:
        """The first document's schema header is kept."""
        merged = merge_sarif_documents([{"$schema": "s", "version": "2.1.0", "runs": [1]}, {"runs": [2]}])
        assert merged == {"$schema": "s", "version": "2.1.0", "runs": [1, 2]}


class TestMergeStrategy:
    """Tests for MergeStrategy.run."""

    @pytest.fixture
    def plugin(self) -> MagicMock:
        plugin = MagicMock()
        plugin.name = "trivy"
        plugin.success_exit_codes = frozenset({0})

        def invoke(context, args, artifact_path=None, env=None, timeout=None):
            _write(artifact_path, _sarif(args[-1]))
            return _result(0, artifact_path)

        plugin.invoke.side_effect = invoke
        return plugin

    def test_runs_every_pass(self, tmp_path: Path, plugin: MagicMock) -> None:
        """Passes run in order and merge into one artifact."""
        handler = CollectingStreamHandler()
        context = ScanContext(scan_id="s1", target_path=tmp_path, work_dir=tmp_path, stream_handler=handler)
        passes = [
            ScanPass("vuln", ["fs", "VULN"], tmp_path / "p1.sarif"),
            ScanPass("config", ["config", "MISCONF"], tmp_path / "p2.sarif"),
        ]
        result = MergeStrategy(plugin).run(context, passes, tmp_path / "trivy.sarif")

        assert plugin.invoke.call_count == 2
        document = json.loads(result.artifact_path.read_text(encoding="utf-8"))
        assert [r["results"][0]["ruleId"] for r in document["runs"]] == ["VULN", "MISCONF"]
        assert len(handler.of_type(ProgressEventType.SCANNER_PROGRESS)) == 2

    def test_cancelled_between_passes(self, tmp_path: Path, plugin: MagicMock) -> None:
        """Cancellation stops before the next pass."""
        context = ScanContext(scan_id="s1", target_path=tmp_path, work_dir=tmp_path)

        def invoke_and_cancel(ctx, args, artifact_path=None, env=None, timeout=None):
            ctx.cancel_token.cancel()
            return _result(0, None)

        plugin.invoke.side_effect = invoke_and_cancel
        passes = [ScanPass("a", ["a"], tmp_path / "a"), ScanPass("b", ["b"], tmp_path / "b")]
        with pytest.raises(ScanCancelledError):
            MergeStrategy(plugin).run(context, passes, tmp_path / "out.sarif")
        assert plugin.invoke.call_count == 1


class TestTechnologyDetection:
    """Tests for detect_technologies and select_deep_templates."""

    def test_detects_from_rule_and_tags(self) -> None:
        """Table keys and aliases are found in rule ids, titles and tags."""
        findings = [
            _finding("tech-detect:nginx"),
            _finding("x-powered-by", "Express detected"),
            _finding("wp-login", tags=["WordPress", "panel"]),
        ]
        assert detect_technologies(findings) == {"nginx", "nodejs", "wordpress"}

    def test_long_extracted_values_ignored(self) -> None:
        """Extracted page content does not count as a banner."""
        findings = [_finding("generic", extracted=["x" * 60 + "apache"])]
        assert detect_technologies(findings) == set()

    def test_short_extracted_values_used(self) -> None:
        """Short extracted banners are used."""
        assert detect_technologies([_finding("generic", extracted=["Apache/2.4.1"])]) == {"apache"}

    def test_deep_templates_include_baseline(self) -> None:
        """The deep set is the technology templates plus the baseline."""
        templates = select_deep_templates(["nginx", "unknown-tech"])
        assert "http/nginx" in templates
        assert set(BASELINE_TEMPLATES) <= set(templates)

    def test_no_technologies_is_baseline_only(self) -> None:
        """Nothing detected still runs the baseline."""
        assert select_deep_templates([]) == sorted(BASELINE_TEMPLATES)


class TestNormalizeTargetUrl:
    """Tests for normalize_target_url."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("http://localhost:8080/app?q=1", "http://127.0.0.1:8080/app?q=1"),
            ("https://LOCALHOST/", "https://127.0.0.1/"),
            ("http://user:pw@localhost:3000", "http://user:pw@127.0.0.1:3000"),
            ("localhost:5000/x", "127.0.0.1:5000/x"),
            ("http://example.com/localhost", "http://example.com/localhost"),
        ],
    )
    def test_loopback_rewrite(self, url: str, expected: str) -> None:
        """Only the host alias changes."""
        assert normalize_target_url(url) == expected


class TestPhasedStrategy:
    """Tests for PhasedStrategy.run."""

    @pytest.fixture
    def plugin(self) -> MagicMock:
        plugin = MagicMock()
        plugin.name = "nuclei"
        plugin.success_exit_codes = frozenset({0})

        def invoke(context, args, artifact_path=None, env=None, timeout=None):
            artifact_path.write_text(json.dumps({"template-id": args[0]}) + "\n", encoding="utf-8")
            return _result(0, artifact_path, duration=3)

        plugin.invoke.side_effect = invoke
        plugin.parse_output.return_value = [_finding("tech-detect:nginx")]
        return plugin

    @staticmethod
    def _build_args(context: ScanContext, plan: PhasePlan, artifact: Path) -> List[str]:
        return [plan.label, ",".join(plan.templates)]

    def test_discovery_then_deep(self, tmp_path: Path, plugin: MagicMock) -> None:
        """Phase 2 is chosen from phase 1 findings and both artifacts combine."""
        handler = CollectingStreamHandler()
        context = ScanContext(scan_id="s1", target_path=tmp_path, work_dir=tmp_path, stream_handler=handler)
        outcome = PhasedStrategy(plugin, self._build_args).run(context, tmp_path / "nuclei.jsonl")

        assert outcome.technologies == {"nginx"}
        assert [p.label for p in outcome.phases] == ["discovery", "deep"]
        assert "http/nginx" in outcome.phases[1].templates
        assert outcome.phases[1].request_timeout == 5
        lines = outcome.result.artifact_path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["template-id"] for line in lines] == ["discovery", "deep"]
        assert outcome.result.duration_ms == 6
        assert len(handler.of_type(ProgressEventType.SCAN_PHASE)) == 2

    def test_cancel_after_discovery(self, tmp_path: Path, plugin: MagicMock) -> None:
        """Cancellation after phase 1 skips phase 2."""
        context = ScanContext(scan_id="s1", target_path=tmp_path, work_dir=tmp_path)

        def parse_and_cancel(result, ctx):
            ctx.cancel_token.cancel()
            return []

        plugin.parse_output.side_effect = parse_and_cancel
        with pytest.raises(ScanCancelledError):
            PhasedStrategy(plugin, self._build_args).run(context, tmp_path / "nuclei.jsonl")
        assert plugin.invoke.call_count == 1
