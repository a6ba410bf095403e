"""Bandit scanner plugin for Python static analysis."""

from __future__ import annotations

import json
from typing import Any, Dict, FrozenSet, List, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import (
    ExecutionResult,
    InputKind,
    NormalizedFinding,
    OutputFormat,
    ScanContext,
    Severity,
)
from scanweave.core.paths import exclude_args, normalize_path
from scanweave.normalizer.fingerprint import compute_fingerprint
from scanweave.normalizer.severity import normalize_confidence, normalize_severity
from scanweave.plugins.scanners.base import ScannerPlugin

LOGGER = get_logger(__name__)

BANDIT_SEVERITY_MAP: Dict[str, Severity] = {
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
}


class BanditScanner(ScannerPlugin):
    """Runs bandit recursively with JSON output.

    Exit code 1 means issues were found.
    """

    executable = "bandit"
    success_exit_codes = frozenset({0, 1})

    @property
    def name(self) -> str:
        return "bandit"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.SOURCE})

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.JSON

    def applies_to(self, context: ScanContext) -> Optional[str]:
        if context.languages and "python" not in context.languages:
            return "no Python sources"
        return None

    def build_args(self, context: ScanContext) -> List[str]:
        args = [
            "-r", str(context.target_path),
            "-f", "json",
            "-o", str(context.artifact_path(self.name, ".json")),
            "-ll",
        ]
        excludes = exclude_args(context.exclude_paths)
        if excludes:
            args.extend(["--exclude", ",".join(excludes)])
        return args

    def scan(self, context: ScanContext) -> ExecutionResult:
        return self.invoke(
            context,
            self.build_args(context),
            artifact_path=context.artifact_path(self.name, ".json"),
        )

    def parse_output(self, result: ExecutionResult, context: ScanContext) -> List[NormalizedFinding]:
        path = result.artifact_path
        if path is None or not path.exists():
            LOGGER.warning("No bandit output file to parse")
            return []
        try:
            report = json.loads(path.read_text(encoding="utf-8", errors="replace"))
        except (OSError, json.JSONDecodeError) as e:
            LOGGER.warning(f"Failed to parse bandit output: {e}")
            return []

        findings: List[NormalizedFinding] = []
        for item in report.get("results", []) if isinstance(report, dict) else []:
            try:
                findings.append(self._convert(item, context))
            except (KeyError, TypeError, ValueError) as e:
                LOGGER.warning(f"Skipping malformed bandit result: {e}")
        return findings

    def _convert(self, item: Dict[str, Any], context: ScanContext) -> NormalizedFinding:
        rule_id = item["test_id"]
        file_path = normalize_path(item.get("filename", ""), context.target_path)
        start_line = int(item.get("line_number") or 0)
        line_range = item.get("line_range") or []
        end_line = line_range[-1] if len(line_range) > 1 else None
        cwe = item.get("issue_cwe") or {}

        return NormalizedFinding(
            source_tool=self.name,
            rule_id=rule_id,
            severity=normalize_severity(item.get("issue_severity"), BANDIT_SEVERITY_MAP),
            confidence=normalize_confidence(item.get("issue_confidence")),
            title=item.get("test_name") or rule_id,
            description=item.get("issue_text", ""),
            file_path=file_path,
            start_line=start_line,
            end_line=end_line,
            start_column=item.get("col_offset"),
            end_column=item.get("end_col_offset"),
            snippet=item.get("code"),
            weakness_ids=[f"CWE-{cwe['id']}"] if cwe.get("id") else [],
            references=[item["more_info"]] if item.get("more_info") else [],
            fingerprint=compute_fingerprint(self.name, rule_id, file_path, start_line),
            metadata={"test_name": item.get("test_name")},
        )
