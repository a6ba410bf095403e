"""Reporter plugins for scanweave output formatting.

Plugins are discovered via Python entry points (scanweave.reporters group).
"""

from typing import Dict, List, Optional, Type

from scanweave.plugins import REPORTER_ENTRY_POINT_GROUP
from scanweave.plugins.discovery import discover_plugins
from scanweave.plugins.reporters.base import ReporterPlugin
from scanweave.plugins.reporters.json_reporter import JSONReporter
from scanweave.plugins.reporters.sarif_reporter import SARIFReporter
from scanweave.plugins.reporters.summary_reporter import SummaryReporter

BUILTIN_REPORTERS: Dict[str, Type[ReporterPlugin]] = {
    "json": JSONReporter,
    "sarif": SARIFReporter,
    "summary": SummaryReporter,
}


def discover_reporter_plugins() -> Dict[str, Type[ReporterPlugin]]:
    """Built-in reporters plus any installed via entry points."""
    reporters = dict(BUILTIN_REPORTERS)
    for name, plugin_class in discover_plugins(REPORTER_ENTRY_POINT_GROUP, ReporterPlugin).items():
        reporters.setdefault(name, plugin_class)
    return reporters


def get_reporter_plugin(name: str) -> Optional[ReporterPlugin]:
    """Get an instantiated reporter plugin by name."""
    plugin_class = discover_reporter_plugins().get(name)
    return plugin_class() if plugin_class else None


def list_available_reporters() -> List[str]:
    """List names of all available reporter plugins."""
    return sorted(discover_reporter_plugins())


__all__ = [
    "BUILTIN_REPORTERS",
    "JSONReporter",
    "ReporterPlugin",
    "SARIFReporter",
    "SummaryReporter",
    "discover_reporter_plugins",
    "get_reporter_plugin",
    "list_available_reporters",
]
