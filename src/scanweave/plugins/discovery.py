"""Plugin discovery via Python entry points.

Supports discovering different plugin types:
- Scanner plugins: scanweave.scanners
- Reporter plugins: scanweave.reporters
"""

from __future__ import annotations

from importlib.metadata import entry_points
from typing import Dict, List, Optional, Type, TypeVar

from scanweave.core.logging import get_logger

LOGGER = get_logger(__name__)

SCANNER_ENTRY_POINT_GROUP = "scanweave.scanners"
REPORTER_ENTRY_POINT_GROUP = "scanweave.reporters"

T = TypeVar("T")


def discover_plugins(group: str, base_class: Optional[Type[T]] = None) -> Dict[str, Type[T]]:
    """Discover all installed plugins for a given entry point group.

    Plugins register themselves in their pyproject.toml:

        [project.entry-points."scanweave.scanners"]
        trivy = "scanweave.plugins.scanners.trivy:TrivyScanner"

    A plugin that fails to import or has the wrong base class is logged
    and skipped.

    Args:
        group: Entry point group name (e.g., 'scanweave.scanners').
        base_class: Optional base class to validate plugins against.

    Returns:
        Dictionary mapping plugin names to plugin classes.
    """
    plugins: Dict[str, Type[T]] = {}

    for ep in entry_points(group=group):
        try:
            plugin_class = ep.load()
        except Exception as e:
            LOGGER.warning(f"Failed to load plugin '{ep.name}': {e}")
            continue
        if base_class is not None and not (
            isinstance(plugin_class, type) and issubclass(plugin_class, base_class)
        ):
            LOGGER.warning(f"Plugin '{ep.name}' does not inherit from {base_class.__name__}, skipping")
            continue
        plugins[ep.name] = plugin_class
        LOGGER.debug(f"Discovered plugin: {ep.name} (group: {group})")

    return plugins


def get_plugin(
    group: str,
    name: str,
    base_class: Optional[Type[T]] = None,
    **kwargs,
) -> Optional[T]:
    """Get an instantiated plugin by name.

    Args:
        group: Entry point group name.
        name: Plugin name (e.g., 'trivy').
        base_class: Optional base class to validate against.
        **kwargs: Passed to the plugin constructor.

    Returns:
        Instantiated plugin or None if not found.
    """
    plugin_class = discover_plugins(group, base_class).get(name)
    if plugin_class:
        return plugin_class(**kwargs)
    return None


def list_available_plugins(group: str) -> List[str]:
    """List names of all available plugins in a group."""
    return sorted(discover_plugins(group).keys())
