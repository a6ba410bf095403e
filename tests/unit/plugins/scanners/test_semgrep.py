"""Unit tests for Semgrep scanner plugin."""

from __future__ import annotations

import pytest

from scanweave.core.models import Confidence, ScanContext, Severity
from scanweave.plugins.scanners.semgrep import DEFAULT_RULESETS, SemgrepScanner


@pytest.fixture
def scanner(runner) -> SemgrepScanner:
    return SemgrepScanner(runner=runner)


class TestSemgrepArgs:
    """Tests for semgrep argument construction."""

    def test_default_rulesets(self, scanner: SemgrepScanner, context: ScanContext) -> None:
        args = scanner.build_args(context)
        configs = [args[i + 1] for i, a in enumerate(args) if a == "--config"]
        assert configs == DEFAULT_RULESETS
        assert args[args.index("--timeout") + 1] == "120"
        assert args[-1] == str(context.target_path)

    def test_custom_rulesets_and_excludes(self, scanner: SemgrepScanner, context: ScanContext) -> None:
        context.config = {"tools": {"semgrep": {"rulesets": ["p/python"]}}}
        context.exclude_paths = ["tests/", "!keep.py"]
        args = scanner.build_args(context)
        assert [args[i + 1] for i, a in enumerate(args) if a == "--config"] == ["p/python"]
        assert [args[i + 1] for i, a in enumerate(args) if a == "--exclude"] == ["tests"]

    def test_rulesets_as_string(self, scanner: SemgrepScanner, context: ScanContext) -> None:
        context.config = {"tools": {"semgrep": {"rulesets": "p/python, p/secrets"}}}
        args = scanner.build_args(context)
        assert [args[i + 1] for i, a in enumerate(args) if a == "--config"] == ["p/python", "p/secrets"]


class TestSemgrepScan:
    """Tests for running and parsing semgrep."""

    def test_metrics_disabled(self, scanner: SemgrepScanner, runner, context: ScanContext) -> None:
        scanner.scan(context)
        invocation = runner.invocations[0]
        assert invocation.env == {"SEMGREP_SEND_METRICS": "off"}
        assert invocation.argv[0] == "semgrep"
        assert invocation.timeout == 120

    @pytest.mark.parametrize("code,error", [(0, False), (1, False), (2, True), (7, True)])
    def test_exit_codes(self, scanner: SemgrepScanner, runner, context: ScanContext, code: int, error: bool) -> None:
        runner.exit_codes = [code]
        assert scanner.scan(context).error is error

    def test_parse(self, scanner: SemgrepScanner, runner, context: ScanContext, make_sarif) -> None:
        """Absolute paths are made relative to the target."""
        runner.writes(make_sarif(
            [{
                "ruleId": "python.lang.security.audit.formatted-sql-query",
                "level": "error",
                "message": {"text": "Detected possible SQL injection"},
                "locations": [{
                    "physicalLocation": {
                        "artifactLocation": {"uri": f"file://{context.target_path}/app/db.py"},
                        "region": {"startLine": 42, "startColumn": 9, "snippet": {"text": "cursor.execute(q)"}},
                    }
                }],
            }],
            rules=[{
                "id": "python.lang.security.audit.formatted-sql-query",
                "shortDescription": {"text": "Formatted SQL query"},
                "helpUri": "https://semgrep.dev/r/formatted-sql-query",
                "properties": {"precision": "high", "tags": ["CWE-89: SQL Injection", "OWASP-A03:2021"]},
            }],
        ))

        findings = scanner.parse_output(scanner.scan(context), context)

        assert len(findings) == 1
        finding = findings[0]
        assert finding.file_path == "app/db.py"
        assert finding.start_line == 42
        assert finding.start_column == 9
        assert finding.snippet == "cursor.execute(q)"
        assert finding.severity == Severity.HIGH
        assert finding.confidence == Confidence.HIGH
        assert finding.weakness_ids == ["CWE-89"]
        assert finding.references == ["https://semgrep.dev/r/formatted-sql-query"]
        assert finding.title == "Formatted SQL query"

    def test_corrupt_artifact(self, scanner: SemgrepScanner, runner, context: ScanContext) -> None:
        runner.writer = lambda inv: inv.artifact_path.write_text("{not sarif", encoding="utf-8")
        assert scanner.parse_output(scanner.scan(context), context) == []
