"""Tests for plugin discovery and the scanner registry."""

from __future__ import annotations

from typing import Any, List
from unittest.mock import MagicMock, patch

import pytest

from scanweave.core.subprocess_runner import ProcessRunner
from scanweave.plugins import (
    SCANNER_ENTRY_POINT_GROUP,
    discover_plugins,
    get_plugin,
    list_available_plugins,
)
from scanweave.plugins.scanners import (
    BUILTIN_SCANNERS,
    build_scanner_registry,
    get_scanner_plugin,
    list_available_scanners,
)
from scanweave.plugins.scanners.base import ScannerPlugin
from scanweave.plugins.scanners.trivy import TrivyScanner


class ExternalScanner(TrivyScanner):
    @property
    def name(self) -> str:
        return "external"


def _entry_point(name: str, loaded: Any = None, error: Exception = None) -> MagicMock:
    ep = MagicMock()
    ep.name = name
    if error is not None:
        ep.load.side_effect = error
    else:
        ep.load.return_value = loaded
    return ep


@pytest.fixture
def installed():
    """Patch the entry points visible to discovery."""
    eps: List[MagicMock] = []
    with patch("scanweave.plugins.discovery.entry_points", side_effect=lambda group: list(eps)):
        yield eps


class TestDiscoverPlugins:
    """Tests for discover_plugins."""

    def test_loads_entry_points(self, installed) -> None:
        installed.append(_entry_point("external", ExternalScanner))
        assert discover_plugins(SCANNER_ENTRY_POINT_GROUP) == {"external": ExternalScanner}

    def test_base_class_filters(self, installed) -> None:
        installed.extend([
            _entry_point("external", ExternalScanner),
            _entry_point("not-a-class", object()),
            _entry_point("wrong-base", dict),
        ])
        assert list(discover_plugins(SCANNER_ENTRY_POINT_GROUP, ScannerPlugin)) == ["external"]

    def test_broken_plugin_skipped(self, installed) -> None:
        installed.extend([
            _entry_point("broken", error=ImportError("No module named 'missing'")),
            _entry_point("external", ExternalScanner),
        ])
        assert list(discover_plugins(SCANNER_ENTRY_POINT_GROUP)) == ["external"]

    def test_empty_group(self, installed) -> None:
        assert discover_plugins("scanweave.nonexistent") == {}
        assert list_available_plugins("scanweave.nonexistent") == []

    def test_get_plugin(self, installed) -> None:
        installed.append(_entry_point("external", ExternalScanner))
        plugin = get_plugin(SCANNER_ENTRY_POINT_GROUP, "external", ScannerPlugin)
        assert isinstance(plugin, ExternalScanner)
        assert get_plugin(SCANNER_ENTRY_POINT_GROUP, "unknown") is None


class TestScannerRegistry:
    """Tests for the built-in scanner table."""

    def test_builtins_without_entry_points(self, installed) -> None:
        assert list_available_scanners() == sorted(BUILTIN_SCANNERS)

    def test_names_match_keys(self, installed) -> None:
        for key, plugin in build_scanner_registry().items():
            assert plugin.name == key

    def test_shared_runner(self, installed) -> None:
        runner = ProcessRunner()
        registry = build_scanner_registry(runner)
        assert all(plugin.runner is runner for plugin in registry.values())

    def test_entry_point_extends_registry(self, installed) -> None:
        installed.append(_entry_point("external", ExternalScanner))
        assert isinstance(get_scanner_plugin("external"), ExternalScanner)
        assert "external" in list_available_scanners()

    def test_builtin_not_overridden(self, installed) -> None:
        installed.append(_entry_point("trivy", ExternalScanner))
        assert type(get_scanner_plugin("trivy")) is TrivyScanner

    def test_unknown(self, installed) -> None:
        assert get_scanner_plugin("nope") is None
