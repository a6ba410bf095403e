"""Line-delimited JSON event streams."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from scanweave.core.logging import get_logger

LOGGER = get_logger(__name__)


def iter_json_lines(text: str, source: str = "output") -> Iterator[Dict[str, Any]]:
    """Yield one JSON object per non-empty line.

    Lines that are not JSON objects are skipped; the count of skipped
    lines is logged once at the end.
    """
    skipped = 0
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            value = json.loads(line)
        except json.JSONDecodeError:
            skipped += 1
            continue
        if isinstance(value, dict):
            yield value
        else:
            skipped += 1
    if skipped:
        LOGGER.warning(f"Skipped {skipped} malformed line(s) in {source}")


def read_json_lines_file(path: Optional[Path]) -> Optional[str]:
    """Read a JSONL artifact, returning None when missing or unreadable."""
    if path is None or not path.exists():
        LOGGER.warning(f"JSONL artifact not found: {path}")
        return None
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        LOGGER.warning(f"Failed to read JSONL artifact {path}: {e}")
        return None
