"""JSON-file storage backends under the scanweave cache directory.

Layout:
    <root>/scans/{scan_id}.json
    <root>/diffs/{hash_prefix}/{full_hash}.json

Writes go to a temporary file that is then renamed over the target, so
readers never observe a half-written document.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import ScanResult
from scanweave.diff.models import DiffData
from scanweave.storage.base import DiffCache, ScanStore

LOGGER = get_logger(__name__)


def _write_json(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp, path)


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        LOGGER.warning(f"Failed to read {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


class JsonFileScanStore(ScanStore):
    """Stores each scan result as one JSON document."""

    def __init__(self, root: Path) -> None:
        self._dir = root / "scans"

    def _path(self, scan_id: str) -> Path:
        if "/" in scan_id or "\\" in scan_id or scan_id in ("", ".", ".."):
            raise ValueError(f"Invalid scan id: {scan_id!r}")
        return self._dir / f"{scan_id}.json"

    def save(self, result: ScanResult) -> None:
        _write_json(self._path(result.scan_id), result.to_dict())

    def get(self, scan_id: str) -> Optional[ScanResult]:
        data = _read_json(self._path(scan_id))
        if data is None:
            return None
        try:
            return ScanResult.from_dict(data)
        except (KeyError, ValueError) as e:
            LOGGER.warning(f"Corrupt scan record {scan_id}: {e}")
            return None

    def list_ids(self) -> List[str]:
        if not self._dir.exists():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))


class JsonFileDiffCache(DiffCache):
    """Caches parsed diffs, sharded by key hash."""

    def __init__(self, root: Path) -> None:
        self._dir = root / "diffs"

    def _path(self, scan_id: str, comparison_key: str) -> Path:
        key = hashlib.sha256(f"{scan_id}|{comparison_key}".encode("utf-8")).hexdigest()
        return self._dir / key[:2] / f"{key}.json"

    def get(self, scan_id: str, comparison_key: str) -> Optional[DiffData]:
        data = _read_json(self._path(scan_id, comparison_key))
        if data is None:
            return None
        try:
            return DiffData.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            LOGGER.warning(f"Corrupt diff cache entry for {scan_id}: {e}")
            return None

    def put(self, scan_id: str, comparison_key: str, diff: DiffData) -> None:
        try:
            _write_json(self._path(scan_id, comparison_key), diff.to_dict())
        except OSError as e:
            LOGGER.warning(f"Failed to write diff cache entry for {scan_id}: {e}")
