"""Tests for translating CLI arguments into configuration."""

from __future__ import annotations

from scanweave.cli.arguments import build_parser
from scanweave.cli.config_bridge import ConfigBridge, split_tools
from scanweave.config.loader import dict_to_config
from scanweave.pipeline.selection import ProjectProfile


def _args(*argv: str):
    return build_parser().parse_args(["scan", *argv])


class TestSplitTools:
    """Tests for split_tools."""

    def test_split(self) -> None:
        assert split_tools(" Trivy, semgrep ,,gosec") == ["trivy", "semgrep", "gosec"]

    def test_empty(self) -> None:
        assert split_tools(None) == []
        assert split_tools("") == []


class TestArgsToOverrides:
    """Tests for ConfigBridge.args_to_overrides."""

    def test_no_flags_no_overrides(self) -> None:
        assert ConfigBridge.args_to_overrides(_args()) == {}

    def test_flags_mapped(self) -> None:
        overrides = ConfigBridge.args_to_overrides(
            _args("--max-workers", "2", "--context", "0", "--format", "sarif", "--fail-on", "high")
        )
        assert overrides == {
            "pipeline": {"max_workers": 2},
            "diff": {"context_lines": 0},
            "output": {"format": "sarif"},
            "fail_on": "high",
        }

    def test_target_url_enables_dast(self) -> None:
        overrides = ConfigBridge.args_to_overrides(
            _args("--target-url", "http://localhost:8080", "--image", "nginx:1.25")
        )
        assert overrides["categories"] == {"dast": True}
        assert overrides["targets"] == {"urls": ["http://localhost:8080"], "images": ["nginx:1.25"]}


class TestRequestedTools:
    """Tests for ConfigBridge.requested_tools."""

    def test_explicit_tools_win(self) -> None:
        config = dict_to_config({"tools": {"zap": {}}})
        tools = ConfigBridge.requested_tools(_args("--tools", "trivy"), config, ProjectProfile({"python": 1}))
        assert tools == ["trivy"]

    def test_selection_plus_config_tools(self) -> None:
        """Config-enabled tools are appended to the detected selection."""
        config = dict_to_config({"tools": {"trufflehog": {}, "bandit": {"enabled": False}}})
        tools = ConfigBridge.requested_tools(_args(), config, ProjectProfile({"python": 1}))
        assert tools == ["semgrep", "trivy", "gitleaks", "trufflehog"]
