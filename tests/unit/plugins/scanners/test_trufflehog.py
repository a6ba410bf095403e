"""Unit tests for TruffleHog scanner plugin."""

from __future__ import annotations

import json

import pytest

from scanweave.core.models import Confidence, ScanContext, Severity
from scanweave.plugins.scanners.trufflehog import TrufflehogScanner, rule_id_for


@pytest.fixture
def scanner(runner) -> TrufflehogScanner:
    return TrufflehogScanner(runner=runner)


def _record(context: ScanContext, detector: str = "AWS", verified: bool = False, line: int = 3) -> str:
    return json.dumps({
        "DetectorName": detector,
        "DecoderName": "PLAIN",
        "Verified": verified,
        "Redacted": "AKIA****",
        "SourceMetadata": {"Data": {"Filesystem": {"file": f"{context.target_path}/config/.env", "line": line}}},
    })


class TestTrufflehogScanner:
    """Tests for TrufflehogScanner."""

    @pytest.mark.parametrize("detector,expected", [("AWS", "trufflehog-aws"), (" Private Key ", "trufflehog-private-key")])
    def test_rule_id(self, detector: str, expected: str) -> None:
        assert rule_id_for(detector) == expected

    def test_args_without_excludes(self, scanner: TrufflehogScanner, runner, context: ScanContext) -> None:
        scanner.scan(context)
        assert runner.argv == [
            "trufflehog", "filesystem", str(context.target_path), "--json", "--no-update", "--concurrency", "5",
        ]

    def test_exclude_file(self, scanner: TrufflehogScanner, runner, context: ScanContext) -> None:
        """Exclusions are written as escaped regexes to a file."""
        context.exclude_paths = ["node_modules/", "dist.min"]
        scanner.scan(context)

        exclude_file = context.work_dir / "trufflehog-exclude.txt"
        assert runner.argv[-2:] == ["--exclude-paths", str(exclude_file)]
        assert exclude_file.read_text(encoding="utf-8") == "node_modules\ndist\\.min\n"

    def test_found_exit_code_is_success(self, scanner: TrufflehogScanner, runner, context: ScanContext) -> None:
        runner.exit_codes = [183]
        assert not scanner.scan(context).error

    def test_parse_stdout(self, scanner: TrufflehogScanner, runner, context: ScanContext) -> None:
        runner.stdout = "\n".join([
            _record(context, verified=True),
            "not json",
            json.dumps({"SourceMetadata": {}}),
            _record(context, detector="Slack Webhook", line=9),
        ])
        findings = scanner.parse_output(scanner.scan(context), context)

        assert len(findings) == 2
        verified, unverified = findings
        assert verified.severity == Severity.CRITICAL
        assert verified.confidence == Confidence.HIGH
        assert verified.title == "Verified AWS Secret Detected"
        assert verified.file_path == "config/.env"
        assert verified.weakness_ids == ["CWE-798"]
        assert unverified.rule_id == "trufflehog-slack-webhook"
        assert unverified.severity == Severity.HIGH
        assert unverified.start_line == 9
        assert "has not been verified" in unverified.description
