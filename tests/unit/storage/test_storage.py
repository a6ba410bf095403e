"""Tests for scan stores and diff caches."""

from __future__ import annotations

from pathlib import Path

import pytest

from scanweave.core.models import ScanResult, ScanStatus
from scanweave.diff.parser import parse_diff
from scanweave.storage.base import DiffCache, ScanStore
from scanweave.storage.filesystem import JsonFileDiffCache, JsonFileScanStore
from scanweave.storage.memory import InMemoryDiffCache, InMemoryScanStore

DIFF = """--- a/a.py
+++ b/a.py
@@ -1,1 +1,2 @@
 x = 1
+y = 2
"""


@pytest.fixture(params=["memory", "file"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> ScanStore:
    if request.param == "memory":
        return InMemoryScanStore()
    return JsonFileScanStore(tmp_path)


@pytest.fixture(params=["memory", "file"])
def diff_cache(request: pytest.FixtureRequest, tmp_path: Path) -> DiffCache:
    if request.param == "memory":
        return InMemoryDiffCache()
    return JsonFileDiffCache(tmp_path)


class TestScanStore:
    """Tests shared by every ScanStore backend."""

    def test_save_and_get(self, store: ScanStore) -> None:
        result = ScanResult(scan_id="scan-1", requested_tools=["trivy"])
        store.save(result)
        loaded = store.get("scan-1")
        assert loaded is not None
        assert loaded.requested_tools == ["trivy"]

    def test_get_missing(self, store: ScanStore) -> None:
        assert store.get("absent") is None

    def test_save_replaces(self, store: ScanStore) -> None:
        result = ScanResult(scan_id="scan-1")
        store.save(result)
        result.transition(ScanStatus.RUNNING)
        store.save(result)
        assert store.get("scan-1").status == ScanStatus.RUNNING

    def test_returns_copies(self, store: ScanStore) -> None:
        """Mutating a loaded result does not change the store."""
        store.save(ScanResult(scan_id="scan-1"))
        loaded = store.get("scan-1")
        loaded.requested_tools.append("zap")
        assert store.get("scan-1").requested_tools == []

    def test_list_ids_sorted(self, store: ScanStore) -> None:
        for scan_id in ("b", "a", "c"):
            store.save(ScanResult(scan_id=scan_id))
        assert store.list_ids() == ["a", "b", "c"]


class TestDiffCache:
    """Tests shared by every DiffCache backend."""

    def test_miss_then_hit(self, diff_cache: DiffCache) -> None:
        assert diff_cache.get("scan-1", "key") is None
        diff = parse_diff(DIFF)
        diff_cache.put("scan-1", "key", diff)
        cached = diff_cache.get("scan-1", "key")
        assert cached is not None
        assert cached.files["a.py"].added_lines == {2}

    def test_keys_are_independent(self, diff_cache: DiffCache) -> None:
        diff_cache.put("scan-1", "key-a", parse_diff(DIFF))
        assert diff_cache.get("scan-1", "key-b") is None
        assert diff_cache.get("scan-2", "key-a") is None


class TestJsonFileScanStore:
    """Tests specific to the file backend."""

    def test_layout(self, tmp_path: Path) -> None:
        JsonFileScanStore(tmp_path).save(ScanResult(scan_id="scan-1"))
        assert (tmp_path / "scans" / "scan-1.json").exists()
        assert not list((tmp_path / "scans").glob(".*.tmp"))

    def test_rejects_path_traversal(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            JsonFileScanStore(tmp_path).get("../etc/passwd")

    def test_corrupt_file_is_miss(self, tmp_path: Path) -> None:
        scans = tmp_path / "scans"
        scans.mkdir()
        (scans / "scan-1.json").write_text("{broken", encoding="utf-8")
        assert JsonFileScanStore(tmp_path).get("scan-1") is None

    def test_diff_cache_sharded(self, tmp_path: Path) -> None:
        JsonFileDiffCache(tmp_path).put("scan-1", "key", parse_diff(DIFF))
        entries = list((tmp_path / "diffs").glob("*/*.json"))
        assert len(entries) == 1
        assert entries[0].stem.startswith(entries[0].parent.name)
