"""Stable finding identity.

A fingerprint depends only on the tool, the rule and the canonical
location, so unchanged code yields the same value on every scan.
"""

from __future__ import annotations

import hashlib
from typing import Optional, Union

from scanweave.core.paths import normalize_path

FINGERPRINT_LENGTH = 32


def compute_fingerprint(
    source_tool: str,
    rule_id: str,
    file_path: str,
    location: Optional[Union[int, str]] = None,
) -> str:
    """Compute a finding fingerprint.

    Args:
        source_tool: Tool that reported the finding.
        rule_id: Tool rule or template identifier.
        file_path: File path, URL or package the finding points at.
        location: Line number or resource identifier within the file.

    Returns:
        32-character hex digest.
    """
    parts = [
        source_tool.strip().lower(),
        rule_id.strip(),
        normalize_path(file_path),
        "" if location is None else str(location).strip(),
    ]
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]
