"""Tests for the availability prober."""

from __future__ import annotations

from typing import Dict
from unittest.mock import MagicMock

import pytest

from scanweave.bootstrap.health import NOT_PROBED, AvailabilityProber
from scanweave.core.models import ToolStatus


def _plugin(name: str, available: bool = True, version: str = "1.0.0", error: str = "") -> MagicMock:
    plugin = MagicMock()
    plugin.name = name
    plugin.probe.return_value = ToolStatus(
        name=name,
        available=available,
        version=version if available else None,
        error=None if available else (error or f"{name} not found"),
    )
    return plugin


class TestAvailabilityProber:
    """Tests for AvailabilityProber."""

    @pytest.fixture
    def plugins(self) -> Dict[str, MagicMock]:
        return {
            "trivy": _plugin("trivy"),
            "semgrep": _plugin("semgrep", available=False),
            "gosec": _plugin("gosec"),
        }

    def test_probe_all_builds_snapshot(self, plugins: Dict[str, MagicMock]) -> None:
        """Every adapter is probed once and recorded."""
        prober = AvailabilityProber(plugins, timeout=3)
        statuses = prober.probe_all()

        assert set(statuses) == {"trivy", "semgrep", "gosec"}
        assert prober.has_snapshot
        assert prober.available_tools() == ["gosec", "trivy"]
        assert prober.unavailable_tools() == ["semgrep"]
        plugins["trivy"].probe.assert_called_once_with(timeout=3)

    def test_partition_preserves_order(self, plugins: Dict[str, MagicMock]) -> None:
        """Available tools keep request order; the rest carry reasons."""
        prober = AvailabilityProber(plugins)
        prober.probe_all()
        partition = prober.filter_to_available(["gosec", "semgrep", "trivy", "unknown"])

        assert partition.available == ["gosec", "trivy"]
        assert partition.skipped == {"semgrep": "semgrep not found", "unknown": NOT_PROBED}

    def test_partition_is_disjoint_and_deduplicated(self, plugins: Dict[str, MagicMock]) -> None:
        """Duplicates collapse and no tool is both available and skipped."""
        prober = AvailabilityProber(plugins)
        prober.probe_all()
        partition = prober.filter_to_available(["Trivy", "trivy", " semgrep ", "semgrep"])

        assert partition.available == ["trivy"]
        assert list(partition.skipped) == ["semgrep"]
        assert not set(partition.available) & set(partition.skipped)

    def test_partition_does_not_probe(self, plugins: Dict[str, MagicMock]) -> None:
        """Partitioning only reads the snapshot."""
        prober = AvailabilityProber(plugins)
        partition = prober.filter_to_available(["trivy"])
        assert partition.skipped == {"trivy": NOT_PROBED}
        plugins["trivy"].probe.assert_not_called()

    def test_probe_single_updates_snapshot(self, plugins: Dict[str, MagicMock]) -> None:
        """probe refreshes one entry on demand."""
        prober = AvailabilityProber(plugins)
        status = prober.probe("TRIVY")
        assert status.available is True
        assert prober.get_status("trivy") is not None
        assert prober.get_status("semgrep") is None

    def test_probe_exception_marks_unavailable(self) -> None:
        """A crashing probe is recorded as unavailable."""
        plugin = MagicMock()
        plugin.probe.side_effect = RuntimeError("boom")
        prober = AvailabilityProber({"zap": plugin})
        statuses = prober.probe_all()
        assert statuses["zap"].available is False
        assert statuses["zap"].error == "boom"

    def test_unknown_tool_probe(self) -> None:
        """Probing an unregistered tool reports it unknown."""
        status = AvailabilityProber({}).probe("nothing")
        assert status.available is False
        assert status.error == "unknown tool"

    def test_empty_registry(self) -> None:
        """No adapters means an empty snapshot."""
        assert AvailabilityProber({}).probe_all() == {}
