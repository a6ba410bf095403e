"""SARIF 2.1.0 parser.

Converts every result of every run into a NormalizedFinding. Rule metadata
is resolved through a per-run rule map; only the first location of a
result is used.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from scanweave.core.logging import get_logger
from scanweave.core.models import Confidence, NormalizedFinding, Severity
from scanweave.core.paths import normalize_path
from scanweave.normalizer.fingerprint import compute_fingerprint
from scanweave.normalizer.severity import (
    normalize_confidence,
    normalize_severity,
    severity_from_score,
)

LOGGER = get_logger(__name__)

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"

LEVEL_SEVERITY: Dict[str, Severity] = {
    "error": Severity.HIGH,
    "warning": Severity.MEDIUM,
    "note": Severity.LOW,
    "none": Severity.INFO,
}

CWE_PATTERN = re.compile(r"CWE-\d+", re.IGNORECASE)
CVE_PATTERN = re.compile(r"CVE-\d{4}-\d+", re.IGNORECASE)
OWASP_PATTERN = re.compile(r"^A\d{2}:\d{4}")


def load_sarif_file(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    """Load a SARIF document from disk.

    Returns:
        The parsed document, or None (with a logged warning) when the file
        is missing, unreadable or not a SARIF log.
    """
    if path is None or not path.exists():
        LOGGER.warning(f"SARIF artifact not found: {path}")
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8", errors="replace"))
    except (OSError, json.JSONDecodeError) as e:
        LOGGER.warning(f"Failed to read SARIF artifact {path}: {e}")
        return None
    if not isinstance(data, dict) or not isinstance(data.get("runs"), list):
        LOGGER.warning(f"SARIF artifact {path} has no runs")
        return None
    return data


def parse_sarif_file(
    path: Optional[Path],
    tool_name: str,
    work_dir: Optional[Union[str, Path]] = None,
) -> List[NormalizedFinding]:
    """Load and parse a SARIF file; malformed or missing files yield []."""
    document = load_sarif_file(path)
    if document is None:
        return []
    return parse_sarif(document, tool_name, work_dir)


def parse_sarif(
    document: Dict[str, Any],
    tool_name: str,
    work_dir: Optional[Union[str, Path]] = None,
) -> List[NormalizedFinding]:
    """Parse a SARIF document into normalized findings.

    Args:
        document: Parsed SARIF log.
        tool_name: Adapter name recorded as the finding source.
        work_dir: Scanned directory, stripped from reported paths.

    Returns:
        Findings from all runs, in document order.
    """
    findings: List[NormalizedFinding] = []
    runs = document.get("runs") or []
    for run in runs:
        if not isinstance(run, dict):
            continue
        rules, rule_index = _build_rule_map(run)
        driver = (run.get("tool") or {}).get("driver") or {}
        for result in run.get("results") or []:
            try:
                finding = _parse_result(result, rules, rule_index, tool_name, work_dir, driver)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                LOGGER.warning(f"Skipping malformed {tool_name} SARIF result: {e}")
                continue
            if finding is not None:
                findings.append(finding)
    return findings


def classify_tags(tags: List[str]) -> Tuple[List[str], List[str], List[str]]:
    """Split tags into (weakness ids, vulnerability ids, OWASP categories)."""
    cwes: List[str] = []
    cves: List[str] = []
    owasp: List[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        for match in CWE_PATTERN.findall(tag):
            _append_unique(cwes, match.upper())
        for match in CVE_PATTERN.findall(tag):
            _append_unique(cves, match.upper())
        if OWASP_PATTERN.match(tag):
            _append_unique(owasp, tag)
    return cwes, cves, owasp


def _append_unique(values: List[str], value: str) -> None:
    if value not in values:
        values.append(value)


def _build_rule_map(run: Dict[str, Any]) -> Tuple[Dict[str, Dict[str, Any]], List[Dict[str, Any]]]:
    tool = run.get("tool") or {}
    driver_rules = list((tool.get("driver") or {}).get("rules") or [])
    all_rules = list(driver_rules)
    for extension in tool.get("extensions") or []:
        all_rules.extend(extension.get("rules") or [])

    rules: Dict[str, Dict[str, Any]] = {}
    for rule in all_rules:
        if isinstance(rule, dict) and rule.get("id"):
            rules[rule["id"]] = rule
    return rules, driver_rules


def _parse_result(
    result: Dict[str, Any],
    rules: Dict[str, Dict[str, Any]],
    rule_index: List[Dict[str, Any]],
    tool_name: str,
    work_dir: Optional[Union[str, Path]],
    driver: Dict[str, Any],
) -> Optional[NormalizedFinding]:
    rule_id = result.get("ruleId") or (result.get("rule") or {}).get("id")
    index = result.get("ruleIndex")
    if not rule_id and isinstance(index, int) and 0 <= index < len(rule_index):
        rule_id = rule_index[index].get("id")
    if not rule_id:
        LOGGER.debug(f"{tool_name}: SARIF result without rule id skipped")
        return None

    rule = rules.get(rule_id, {})
    properties: Dict[str, Any] = {}
    properties.update(rule.get("properties") or {})
    properties.update(result.get("properties") or {})

    file_path, start_line, end_line, start_col, end_col, snippet = _first_location(result, work_dir)

    tags = [t for t in properties.get("tags") or [] if isinstance(t, str)]
    weakness_ids, vulnerability_ids, owasp = classify_tags(tags)
    if CVE_PATTERN.fullmatch(rule_id):
        _append_unique(vulnerability_ids, rule_id.upper())

    message = (result.get("message") or {}).get("text", "")
    title = (rule.get("shortDescription") or {}).get("text") or rule.get("name")
    if not title:
        title = message.splitlines()[0] if message.strip() else rule_id
    description = message or (rule.get("fullDescription") or {}).get("text", "")

    references: List[str] = []
    if rule.get("helpUri"):
        references.append(rule["helpUri"])

    metadata: Dict[str, Any] = {"tags": tags}
    if owasp:
        metadata["owasp"] = owasp
    if driver.get("name"):
        metadata["driver"] = driver["name"]
    if result.get("partialFingerprints"):
        metadata["partial_fingerprints"] = result["partialFingerprints"]

    return NormalizedFinding(
        source_tool=tool_name,
        rule_id=rule_id,
        severity=_severity(result, rule, properties),
        confidence=normalize_confidence(properties.get("precision"), default=Confidence.LOW),
        title=title,
        description=description,
        file_path=file_path,
        start_line=start_line,
        end_line=end_line,
        start_column=start_col,
        end_column=end_col,
        snippet=snippet,
        weakness_ids=weakness_ids,
        vulnerability_ids=vulnerability_ids,
        references=references,
        fix=_fix_text(result),
        fingerprint=compute_fingerprint(tool_name, rule_id, file_path, start_line),
        metadata=metadata,
    )


def _first_location(
    result: Dict[str, Any],
    work_dir: Optional[Union[str, Path]],
) -> Tuple[str, int, Optional[int], Optional[int], Optional[int], Optional[str]]:
    locations = result.get("locations") or []
    if not locations:
        return "", 0, None, None, None, None

    physical = locations[0].get("physicalLocation") or {}
    uri = (physical.get("artifactLocation") or {}).get("uri", "")
    region = physical.get("region") or {}

    start_line = int(region.get("startLine") or 0)
    end_line = region.get("endLine")
    snippet = (region.get("snippet") or {}).get("text")
    return (
        normalize_path(uri, work_dir),
        start_line,
        int(end_line) if end_line is not None else None,
        region.get("startColumn"),
        region.get("endColumn"),
        snippet,
    )


def _severity(result: Dict[str, Any], rule: Dict[str, Any], properties: Dict[str, Any]) -> Severity:
    score = properties.get("security-severity")
    if score is not None:
        try:
            return severity_from_score(float(score))
        except (TypeError, ValueError):
            LOGGER.debug(f"Ignoring non-numeric security-severity {score!r}")

    level = result.get("level") or (rule.get("defaultConfiguration") or {}).get("level")
    return normalize_severity(level, LEVEL_SEVERITY, default=Severity.INFO)


def _fix_text(result: Dict[str, Any]) -> Optional[str]:
    fixes = result.get("fixes") or []
    if fixes and isinstance(fixes[0], dict):
        return (fixes[0].get("description") or {}).get("text")
    return None
