"""Availability probing for scanner adapters.

Runs each adapter's version check concurrently and caches the outcome as
a snapshot of ToolStatus values. Partitioning a request only consults the
snapshot; refreshing it is an explicit call.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import ToolStatus
from scanweave.plugins.scanners.base import ScannerPlugin

LOGGER = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT = 10
MAX_PROBE_WORKERS = 8
NOT_PROBED = "not probed"


@dataclass
class ProbePartition:
    """Requested tools split into runnable and skipped.

    Attributes:
        available: Tools to run, in request order.
        skipped: Tool name -> reason it will not run.
    """

    available: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)


class AvailabilityProber:
    """Determines which adapters can run on this host.

    Args:
        plugins: Adapters keyed by tool name.
        timeout: Per-probe version check timeout in seconds.
    """

    def __init__(self, plugins: Mapping[str, ScannerPlugin], timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        self._plugins = {name.lower(): plugin for name, plugin in plugins.items()}
        self._timeout = timeout
        self._statuses: Dict[str, ToolStatus] = {}
        self._lock = threading.Lock()

    @property
    def statuses(self) -> Dict[str, ToolStatus]:
        """Copy of the current snapshot."""
        with self._lock:
            return dict(self._statuses)

    @property
    def has_snapshot(self) -> bool:
        with self._lock:
            return bool(self._statuses)

    def probe_all(self) -> Dict[str, ToolStatus]:
        """Probe every adapter concurrently and replace the snapshot."""
        if not self._plugins:
            return {}

        results: Dict[str, ToolStatus] = {}
        workers = min(MAX_PROBE_WORKERS, len(self._plugins))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self._probe_one, name): name for name in self._plugins}
            for future in as_completed(futures):
                status = future.result()
                results[status.name] = status

        with self._lock:
            self._statuses = results

        available = sorted(n for n, s in results.items() if s.available)
        missing = sorted(n for n, s in results.items() if not s.available)
        LOGGER.info(f"Tools available: {', '.join(available) or 'none'}")
        if missing:
            LOGGER.info(f"Tools unavailable: {', '.join(missing)}")
        return dict(results)

    def probe(self, name: str) -> ToolStatus:
        """Probe one tool on demand and update its snapshot entry."""
        status = self._probe_one(name.lower())
        with self._lock:
            self._statuses[status.name] = status
        return status

    def filter_to_available(self, requested: Iterable[str]) -> ProbePartition:
        """Split requested tools using the cached snapshot only.

        Order is preserved and duplicates collapse to their first
        occurrence. A tool is never both available and skipped.
        """
        partition = ProbePartition()
        seen = set()
        snapshot = self.statuses
        for raw in requested:
            name = raw.strip().lower()
            if not name or name in seen:
                continue
            seen.add(name)
            status = snapshot.get(name)
            if status is None:
                partition.skipped[name] = NOT_PROBED
            elif status.available:
                partition.available.append(name)
            else:
                partition.skipped[name] = status.error or "unavailable"
        return partition

    def get_status(self, name: str) -> Optional[ToolStatus]:
        with self._lock:
            return self._statuses.get(name.lower())

    def available_tools(self) -> List[str]:
        return sorted(n for n, s in self.statuses.items() if s.available)

    def unavailable_tools(self) -> List[str]:
        return sorted(n for n, s in self.statuses.items() if not s.available)

    def _probe_one(self, name: str) -> ToolStatus:
        plugin = self._plugins.get(name)
        if plugin is None:
            return ToolStatus(name=name, available=False, error="unknown tool")
        try:
            status = plugin.probe(timeout=self._timeout)
        except Exception as e:
            LOGGER.warning(f"Probe of {name} failed: {e}")
            return ToolStatus(name=name, available=False, error=str(e))
        status.name = name
        return status
