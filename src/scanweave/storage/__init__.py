"""Scan result storage and parsed-diff caching."""

from scanweave.storage.base import DiffCache, ScanStore
from scanweave.storage.filesystem import JsonFileDiffCache, JsonFileScanStore
from scanweave.storage.memory import InMemoryDiffCache, InMemoryScanStore

__all__ = [
    "DiffCache",
    "ScanStore",
    "InMemoryDiffCache",
    "InMemoryScanStore",
    "JsonFileDiffCache",
    "JsonFileScanStore",
]
