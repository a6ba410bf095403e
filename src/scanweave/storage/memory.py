"""In-process storage backends.

Values are kept in their JSON form so callers never share mutable state
with the store.
"""

from __future__ import annotations

import json
import threading
from typing import Dict, List, Optional, Tuple

from scanweave.core.models import ScanResult
from scanweave.diff.models import DiffData
from scanweave.storage.base import DiffCache, ScanStore


class InMemoryScanStore(ScanStore):
    def __init__(self) -> None:
        self._results: Dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, result: ScanResult) -> None:
        payload = json.dumps(result.to_dict())
        with self._lock:
            self._results[result.scan_id] = payload

    def get(self, scan_id: str) -> Optional[ScanResult]:
        with self._lock:
            payload = self._results.get(scan_id)
        return ScanResult.from_dict(json.loads(payload)) if payload is not None else None

    def list_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._results)


class InMemoryDiffCache(DiffCache):
    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def get(self, scan_id: str, comparison_key: str) -> Optional[DiffData]:
        with self._lock:
            payload = self._entries.get((scan_id, comparison_key))
        return DiffData.from_dict(json.loads(payload)) if payload is not None else None

    def put(self, scan_id: str, comparison_key: str, diff: DiffData) -> None:
        payload = json.dumps(diff.to_dict())
        with self._lock:
            self._entries[(scan_id, comparison_key)] = payload

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
