"""JSON reporter plugin for scanweave."""

from __future__ import annotations

import json
from typing import IO, Any, Dict

from scanweave import __version__
from scanweave.core.models import ScanResult
from scanweave.lifecycle.tracker import count_by_severity, count_by_tool
from scanweave.plugins.reporters.base import ReporterPlugin

SCHEMA_VERSION = "1.0"


class JSONReporter(ReporterPlugin):
    """Reporter plugin that outputs the full scan result as JSON.

    Produces machine-readable JSON output containing:
    - Schema and scanweave versions
    - The serialized scan result (status, per-tool records, findings,
      skipped tools, lifecycle)
    - Summary statistics
    """

    file_extension = ".json"

    @property
    def name(self) -> str:
        return "json"

    def report(self, result: ScanResult, output: IO[str]) -> None:
        """Format scan result as JSON and write to output.

        Args:
            result: The scan result to format.
            output: Output stream to write to.
        """
        json.dump(self._format_result(result), output, indent=2)
        output.write("\n")

    def _format_result(self, result: ScanResult) -> Dict[str, Any]:
        formatted: Dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "scanweave_version": __version__,
        }
        formatted.update(result.to_dict())
        formatted["summary"] = {
            "total": len(result.findings),
            "by_severity": count_by_severity(result.findings),
            "by_tool": count_by_tool(result.findings),
        }
        return formatted
