"""Status command implementation."""

from __future__ import annotations

import platform
from argparse import Namespace
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from scanweave.config.models import ScanweaveConfig

from scanweave.bootstrap.health import AvailabilityProber
from scanweave.bootstrap.paths import get_scanweave_home
from scanweave.cli.commands import Command
from scanweave.cli.exit_codes import EXIT_SUCCESS
from scanweave.plugins.scanners import build_scanner_registry


class StatusCommand(Command):
    """Shows scanner availability and environment information."""

    needs_config = True

    @property
    def name(self) -> str:
        """Command identifier."""
        return "status"

    def execute(self, args: Namespace, config: Optional["ScanweaveConfig"] = None) -> int:
        """Probe every adapter and print one line per tool.

        Returns:
            Exit code (always 0 for status).
        """
        probe_timeout = config.pipeline.probe_timeout if config else 10
        prober = AvailabilityProber(build_scanner_registry(), timeout=probe_timeout)

        print(f"scanweave version: {self._version}")
        print(f"Platform: {platform.system().lower()}-{platform.machine().lower()}")
        print(f"Home: {get_scanweave_home()}")
        print()

        statuses = prober.probe_all()
        print("Scanner plugins:")
        if not statuses:
            print("  No plugins discovered.")
            return EXIT_SUCCESS

        width = max(len(name) for name in statuses)
        for name, status in sorted(statuses.items()):
            if status.available:
                detail = f"v{status.version}" if status.version else "available"
            else:
                detail = f"unavailable ({status.error or 'unknown reason'})"
            print(f"  {name.ljust(width)}  {detail}")

        available = sum(1 for s in statuses.values() if s.available)
        print()
        print(f"{available}/{len(statuses)} tool(s) available.")
        return EXIT_SUCCESS
