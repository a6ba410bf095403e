"""Tests for the validate command."""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path

import pytest

from scanweave.cli.commands.validate import ValidateCommand
from scanweave.cli.exit_codes import EXIT_INVALID_USAGE, EXIT_ISSUES_FOUND, EXIT_SUCCESS


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / ".scanweave.yml"
    path.write_text(content, encoding="utf-8")
    return path


class TestValidateCommand:
    """Tests for ValidateCommand."""

    def test_valid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "pipeline:\n  max_workers: 2\ntools:\n  trivy:\n    scanners: vuln\n")
        assert ValidateCommand().execute(Namespace(config=path)) == EXIT_SUCCESS
        assert "Configuration is valid." in capsys.readouterr().out

    def test_typo_is_warning_with_suggestion(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "pipline:\n  max_workers: 2\n")
        assert ValidateCommand().execute(Namespace(config=path)) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Unknown key 'pipline'" in out
        assert "Did you mean 'pipeline'?" in out

    def test_invalid_value_is_error(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "fail_on: severe\n")
        assert ValidateCommand().execute(Namespace(config=path)) == EXIT_ISSUES_FOUND
        assert "Configuration is invalid" in capsys.readouterr().out

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "tools: [trivy\n")
        assert ValidateCommand().execute(Namespace(config=path)) == EXIT_ISSUES_FOUND

    def test_missing_file(self, tmp_path: Path) -> None:
        assert ValidateCommand().execute(Namespace(config=tmp_path / "nope.yml")) == EXIT_INVALID_USAGE

    def test_no_config_found(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert ValidateCommand().execute(Namespace(config=None)) == EXIT_INVALID_USAGE

    def test_finds_project_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(tmp_path, "output:\n  format: sarif\n")
        monkeypatch.chdir(tmp_path)
        assert ValidateCommand().execute(Namespace(config=None)) == EXIT_SUCCESS

    def test_url_tool_without_targets_warns(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "categories:\n  dast: true\ntools:\n  zap:\n    scan_mode: quick\n  trivy: {}\n")
        assert ValidateCommand().execute(Namespace(config=path, strict=False)) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "DAST is enabled but targets.urls is empty [categories.dast]" in out
        assert "'zap' scans URLs but targets.urls is empty" in out
        assert "'trivy'" not in out
        assert "valid with 2 warning(s)" in out

    def test_url_tool_with_targets_is_clean(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "targets:\n  urls: [http://localhost:3000]\ntools:\n  nuclei: {}\n  katana: {}\n")
        assert ValidateCommand().execute(Namespace(config=path)) == EXIT_SUCCESS
        assert "Configuration is valid." in capsys.readouterr().out

    def test_strict_fails_on_warnings(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "pipline:\n  max_workers: 2\n")
        assert ValidateCommand().execute(Namespace(config=path, strict=True)) == EXIT_ISSUES_FOUND
        assert "--strict" in capsys.readouterr().out
