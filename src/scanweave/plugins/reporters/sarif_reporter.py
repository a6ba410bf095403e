"""SARIF reporter plugin for IDE and code-scanning integration.

Outputs scan results in SARIF 2.1.0 format with one run per tool, so
each tool keeps its own driver and rule catalogue. Compatible with:
- GitHub Security tab (Code Scanning)
- VS Code SARIF Viewer extension
- Other SARIF-compatible tools
"""

from __future__ import annotations

import json
from typing import IO, Any, Dict, List, Optional

from scanweave.core.models import NormalizedFinding, ScanResult, Severity
from scanweave.plugins.reporters.base import ReporterPlugin

# SARIF schema URL
SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
SARIF_VERSION = "2.1.0"

# Severity mapping to SARIF security-severity (CVSS-aligned 0.0-10.0)
# and level (error, warning, note)
SEVERITY_MAP: Dict[Severity, Dict[str, Any]] = {
    Severity.CRITICAL: {"security-severity": "9.5", "level": "error"},
    Severity.HIGH: {"security-severity": "7.5", "level": "error"},
    Severity.MEDIUM: {"security-severity": "5.5", "level": "warning"},
    Severity.LOW: {"security-severity": "2.5", "level": "warning"},
    Severity.INFO: {"security-severity": "0.0", "level": "note"},
}

MAX_SHORT_DESCRIPTION = 1024


class SARIFReporter(ReporterPlugin):
    """Reporter plugin for SARIF 2.1.0 output format."""

    file_extension = ".sarif"

    @property
    def name(self) -> str:
        return "sarif"

    def report(self, result: ScanResult, output: IO[str]) -> None:
        """Format and write the scan result as SARIF JSON.

        Args:
            result: The aggregated scan result to format.
            output: Output stream to write the formatted result.
        """
        json.dump(self.build_sarif(result), output, indent=2)
        output.write("\n")

    def build_sarif(self, result: ScanResult) -> Dict[str, Any]:
        """Build the complete SARIF document.

        Tools that ran but reported nothing still get an empty run.
        """
        by_tool: Dict[str, List[NormalizedFinding]] = {}
        for name, record in result.tool_results.items():
            if record.execution is not None:
                by_tool.setdefault(name, [])
        for finding in result.findings:
            by_tool.setdefault(finding.source_tool, []).append(finding)

        return {
            "$schema": SARIF_SCHEMA,
            "version": SARIF_VERSION,
            "runs": [
                self._build_run(tool, findings, result)
                for tool, findings in sorted(by_tool.items())
            ],
        }

    def _build_run(self, tool: str, findings: List[NormalizedFinding], result: ScanResult) -> Dict[str, Any]:
        record = result.tool_results.get(tool)
        driver: Dict[str, Any] = {
            "name": tool,
            "rules": self._collect_rules(findings),
        }
        if record is not None and record.version:
            driver["version"] = record.version

        run: Dict[str, Any] = {
            "tool": {"driver": driver},
            "results": [self._finding_to_result(f) for f in findings],
        }
        if record is not None:
            run["invocations"] = [{
                "executionSuccessful": record.status.value in ("completed", "timed_out"),
                "exitCode": record.execution.exit_code if record.execution else None,
                "properties": {"status": record.status.value},
            }]
        return run

    def _collect_rules(self, findings: List[NormalizedFinding]) -> List[Dict[str, Any]]:
        """Each unique rule ID becomes one SARIF rule definition."""
        rules: Dict[str, Dict[str, Any]] = {}
        for finding in findings:
            if finding.rule_id not in rules:
                rules[finding.rule_id] = self._build_rule(finding)
        return list(rules.values())

    def _build_rule(self, finding: NormalizedFinding) -> Dict[str, Any]:
        severity_info = SEVERITY_MAP[finding.severity]
        rule: Dict[str, Any] = {
            "id": finding.rule_id,
            "shortDescription": {"text": _truncate(finding.title, MAX_SHORT_DESCRIPTION)},
            "defaultConfiguration": {"level": severity_info["level"]},
            "properties": {"security-severity": severity_info["security-severity"]},
        }
        if finding.description and finding.description != finding.title:
            rule["fullDescription"] = {"text": finding.description}
        if finding.references:
            rule["helpUri"] = finding.references[0]
        if finding.fix:
            rule["help"] = {"text": finding.fix}

        tags = [*finding.weakness_ids, *finding.vulnerability_ids]
        if tags:
            rule["properties"]["tags"] = tags
        return rule

    def _finding_to_result(self, finding: NormalizedFinding) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ruleId": finding.rule_id,
            "message": {"text": finding.description or finding.title},
            "level": SEVERITY_MAP[finding.severity]["level"],
            "fingerprints": {"scanweave/v1": finding.fingerprint},
            "properties": {
                "severity": finding.severity.value,
                "confidence": finding.confidence.value,
            },
        }
        location = self._build_location(finding)
        if location:
            result["locations"] = [location]
        return result

    def _build_location(self, finding: NormalizedFinding) -> Optional[Dict[str, Any]]:
        if not finding.file_path:
            return None

        location: Dict[str, Any] = {
            "physicalLocation": {
                "artifactLocation": {"uri": finding.file_path},
            }
        }
        # Line 0 marks a file-level or URL finding, which has no region.
        if finding.start_line > 0:
            region: Dict[str, Any] = {"startLine": finding.start_line}
            if finding.end_line is not None and finding.end_line >= finding.start_line:
                region["endLine"] = finding.end_line
            if finding.start_column:
                region["startColumn"] = finding.start_column
            if finding.end_column:
                region["endColumn"] = finding.end_column
            if finding.snippet:
                region["snippet"] = {"text": finding.snippet}
            location["physicalLocation"]["region"] = region
        return location


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
