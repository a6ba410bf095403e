"""Persistence interfaces used by the orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from scanweave.core.models import ScanResult
from scanweave.diff.models import DiffData


class ScanStore(ABC):
    """Stores scan results keyed by scan id."""

    @abstractmethod
    def save(self, result: ScanResult) -> None:
        """Insert or replace the stored result."""

    @abstractmethod
    def get(self, scan_id: str) -> Optional[ScanResult]:
        """Return a copy of the stored result, or None."""

    @abstractmethod
    def list_ids(self) -> List[str]:
        """Return all stored scan ids, sorted."""


class DiffCache(ABC):
    """Caches parsed diffs keyed by (scan id, comparison key)."""

    @abstractmethod
    def get(self, scan_id: str, comparison_key: str) -> Optional[DiffData]:
        """Return the cached diff, or None on a miss."""

    @abstractmethod
    def put(self, scan_id: str, comparison_key: str, diff: DiffData) -> None:
        """Store a parsed diff."""
