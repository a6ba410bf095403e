"""Unit tests for Trivy scanner plugin."""

from __future__ import annotations

import json

import pytest

from scanweave.core.models import ScanContext, Severity
from scanweave.core.subprocess_runner import ToolInvocation
from scanweave.plugins.scanners.trivy import TrivyScanner


@pytest.fixture
def scanner(runner) -> TrivyScanner:
    return TrivyScanner(runner=runner)


@pytest.fixture
def per_pass_writer(make_sarif):
    """Writer whose SARIF result rule id depends on the trivy subcommand."""

    def writer(invocation: ToolInvocation) -> None:
        subcommand = invocation.argv[1]
        document = make_sarif(
            [{
                "ruleId": f"CVE-2024-000{1 if subcommand == 'fs' else 2}",
                "level": "error",
                "message": {"text": f"{subcommand} finding"},
                "locations": [{"physicalLocation": {"artifactLocation": {"uri": "requirements.txt"}}}],
            }],
            rules=[{"id": "CVE-2024-0001", "properties": {"security-severity": "9.8"}}],
        )
        invocation.artifact_path.write_text(json.dumps(document), encoding="utf-8")

    return writer


class TestTrivyArgs:
    """Tests for trivy argument construction."""

    def test_fs_args(self, scanner: TrivyScanner, context: ScanContext) -> None:
        context.exclude_paths = ["**/node_modules/**", "*.log"]
        args = scanner.fs_args(context)
        assert args == [
            "fs",
            "--format", "sarif",
            "--output", str(context.work_dir / "trivy-fs.sarif"),
            "--scanners", "vuln",
            "--skip-dirs", ".git",
            "--skip-dirs", "node_modules",
            str(context.target_path),
        ]

    def test_configured_scanners(self, scanner: TrivyScanner, context: ScanContext) -> None:
        context.config = {"tools": {"trivy": {"scanners": ["vuln", "secret"]}}}
        args = scanner.fs_args(context)
        assert args[args.index("--scanners") + 1] == "vuln,secret"

    def test_scanners_as_string(self, scanner: TrivyScanner, context: ScanContext) -> None:
        """A comma-separated YAML string is read as a list, not character by character."""
        context.config = {"tools": {"trivy": {"scanners": "vuln,misconfig"}}, "container_images": "nginx:1.25"}
        args = scanner.fs_args(context)
        assert args[args.index("--scanners") + 1] == "vuln,misconfig"
        assert [p.label for p in scanner.build_passes(context)] == ["filesystem", "image nginx:1.25"]

    def test_one_pass_per_image(self, scanner: TrivyScanner, context: ScanContext) -> None:
        context.config = {"container_images": ["nginx:1.25", "redis"]}
        passes = scanner.build_passes(context)
        assert [p.label for p in passes] == ["filesystem", "image nginx:1.25", "image redis"]
        assert passes[1].artifact_path == context.work_dir / "trivy-image-nginx_1.25.sarif"
        assert passes[1].args[-1] == "nginx:1.25"
        assert all(p.env == {"TRIVY_NO_PROGRESS": "true"} for p in passes)


class TestTrivyScan:
    """Tests for running and parsing trivy."""

    def test_passes_merged(self, scanner: TrivyScanner, runner, context: ScanContext, per_pass_writer) -> None:
        """Filesystem and image passes end up in one SARIF artifact."""
        context.config = {"container_images": ["nginx:1.25"]}
        runner.writer = per_pass_writer

        result = scanner.scan(context)

        assert [inv.argv[1] for inv in runner.invocations] == ["fs", "image"]
        assert result.artifact_path == context.work_dir / "trivy.sarif"
        assert not result.error
        findings = scanner.parse_output(result, context)
        assert sorted(f.rule_id for f in findings) == ["CVE-2024-0001", "CVE-2024-0002"]

    def test_finding_fields(self, scanner: TrivyScanner, runner, context: ScanContext, per_pass_writer) -> None:
        runner.writer = per_pass_writer
        findings = scanner.parse_output(scanner.scan(context), context)

        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.vulnerability_ids == ["CVE-2024-0001"]
        assert finding.file_path == "requirements.txt"
        assert finding.start_line == 0

    def test_failed_pass_marks_error(
        self, scanner: TrivyScanner, runner, context: ScanContext, per_pass_writer
    ) -> None:
        """A failing image pass flags the merged result but keeps other findings."""
        context.config = {"container_images": ["missing:latest"]}
        runner.writer = per_pass_writer
        runner.exit_codes = [0, 1]

        result = scanner.scan(context)

        assert result.error
        assert result.exit_code == 1
        assert len(scanner.parse_output(result, context)) == 2

    def test_missing_artifacts(self, scanner: TrivyScanner, context: ScanContext) -> None:
        result = scanner.scan(context)
        assert result.artifact_path is None
        assert scanner.parse_output(result, context) == []


class TestTrivyProbe:
    """Tests for availability probing."""

    def test_version_probe(self, scanner: TrivyScanner, runner) -> None:
        runner.version = "0.50.1"
        status = scanner.probe()
        assert status.available
        assert status.version == "0.50.1"

    def test_probe_missing_binary(self, scanner: TrivyScanner, runner) -> None:
        runner.available = False
        status = scanner.probe()
        assert not status.available
        assert status.error == "trivy not found"
