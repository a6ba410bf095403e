"""Plugin infrastructure for scanweave.

Scanner plugins (scanweave.scanners) wrap external security tools.
Reporter plugins (scanweave.reporters) format scan results.

Built-in plugins are always available; third-party plugins are
discovered via Python entry points.
"""

from scanweave.plugins.discovery import (
    REPORTER_ENTRY_POINT_GROUP,
    SCANNER_ENTRY_POINT_GROUP,
    discover_plugins,
    get_plugin,
    list_available_plugins,
)

__all__ = [
    "discover_plugins",
    "get_plugin",
    "list_available_plugins",
    "SCANNER_ENTRY_POINT_GROUP",
    "REPORTER_ENTRY_POINT_GROUP",
]
