"""Summary reporter plugin for scanweave."""

from __future__ import annotations

from typing import IO, List

from scanweave.core.models import ScanResult, Severity
from scanweave.lifecycle.tracker import count_by_severity, count_by_tool
from scanweave.plugins.reporters.base import ReporterPlugin


class SummaryReporter(ReporterPlugin):
    """Reporter plugin that outputs a brief scan summary.

    Produces a concise summary with:
    - Scan status and total finding count
    - Breakdown by severity and by tool
    - Per-tool run status and skipped tools with their reasons
    - Lifecycle counts when the scan was compared to a previous one
    """

    @property
    def name(self) -> str:
        return "summary"

    def report(self, result: ScanResult, output: IO[str]) -> None:
        """Format scan result as a summary and write to output.

        Args:
            result: The scan result to format.
            output: Output stream to write to.
        """
        output.write("\n".join(self._format_summary(result)))
        output.write("\n")

    def _format_summary(self, result: ScanResult) -> List[str]:
        lines: List[str] = [
            f"Scan {result.scan_id}: {result.status.value}",
            f"Total findings: {len(result.findings)}",
        ]
        if result.error:
            lines.append(f"Error: {result.error}")

        by_severity = count_by_severity(result.findings)
        if result.findings:
            lines.append("\nBy severity:")
            for severity in Severity:
                count = by_severity[severity.value]
                if count > 0:
                    lines.append(f"  {severity.value.upper()}: {count}")

            lines.append("\nBy tool:")
            for tool, count in sorted(count_by_tool(result.findings).items()):
                lines.append(f"  {tool}: {count}")

        ran = {n: r for n, r in result.tool_results.items() if n not in result.skipped}
        if ran:
            lines.append("\nTools:")
            for name, record in sorted(ran.items()):
                detail = f" ({record.error})" if record.error else ""
                version = f" {record.version}" if record.version else ""
                lines.append(f"  {name}{version}: {record.status.value}{detail}")

        if result.skipped:
            lines.append("\nSkipped:")
            for name, reason in sorted(result.skipped.items()):
                lines.append(f"  {name}: {reason}")

        if result.lifecycle:
            lines.append("\nLifecycle:")
            for state in ("new", "still_open", "redetected", "resolved"):
                lines.append(f"  {state}: {len(result.lifecycle.get(state, []))}")

        lines.append(f"\nScan duration: {result.duration_ms}ms")
        return lines
