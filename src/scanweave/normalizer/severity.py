"""Severity and confidence canonicalization."""

from __future__ import annotations

from typing import Any, Dict, Optional

from scanweave.core.models import Confidence, Severity

# Tool-agnostic spellings seen across scanners.
COMMON_SEVERITY_MAP: Dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "error": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "warning": Severity.MEDIUM,
    "low": Severity.LOW,
    "note": Severity.LOW,
    "info": Severity.INFO,
    "informational": Severity.INFO,
    "none": Severity.INFO,
    "unknown": Severity.INFO,
}


def normalize_severity(
    value: Any,
    mapping: Optional[Dict[str, Severity]] = None,
    default: Severity = Severity.INFO,
) -> Severity:
    """Map a tool-native severity string onto the canonical scale.

    Lookup is case-insensitive; ``mapping`` takes precedence over the
    common vocabulary.
    """
    if isinstance(value, Severity):
        return value
    if value is None:
        return default
    key = str(value).strip().lower()
    if mapping and key in mapping:
        return mapping[key]
    return COMMON_SEVERITY_MAP.get(key, default)


def severity_from_score(score: float) -> Severity:
    """Map a CVSS-like 0-10 score onto the canonical scale."""
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score >= 0.1:
        return Severity.LOW
    return Severity.INFO


def normalize_confidence(value: Any, default: Confidence = Confidence.MEDIUM) -> Confidence:
    """Map precision/confidence vocabularies onto high/medium/low."""
    if value is None:
        return default
    key = str(value).strip().lower()
    if key in ("very-high", "high", "certain", "confirmed"):
        return Confidence.HIGH
    if key in ("medium", "firm"):
        return Confidence.MEDIUM
    if key in ("low", "very-low", "tentative", "false positive"):
        return Confidence.LOW
    return default
