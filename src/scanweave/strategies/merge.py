"""Merge strategy: several passes of one tool, one merged SARIF document.

Each pass produces its own ExecutionResult and artifact. The merged result
concatenates every readable pass's runs, sums durations, and reports an
error when any pass exited outside the tool's success set.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from scanweave.core.exceptions import MergeError, ScanCancelledError
from scanweave.core.logging import get_logger
from scanweave.core.models import ExecutionResult, ScanContext
from scanweave.normalizer.sarif import SARIF_SCHEMA, SARIF_VERSION

if TYPE_CHECKING:
    from scanweave.plugins.scanners.base import ScannerPlugin

LOGGER = get_logger(__name__)


@dataclass
class ScanPass:
    """One invocation within a merge strategy."""

    label: str
    args: List[str]
    artifact_path: Path
    env: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None


def merge_sarif_documents(documents: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Concatenate the runs of several SARIF documents.

    The schema and version header of the first document is kept.
    """
    docs = list(documents)
    header = docs[0] if docs else {}
    merged: Dict[str, Any] = {
        "$schema": header.get("$schema", SARIF_SCHEMA),
        "version": header.get("version", SARIF_VERSION),
        "runs": [],
    }
    for doc in docs:
        merged["runs"].extend(doc.get("runs") or [])
    return merged


def reduce_exit_codes(codes: Iterable[int], success_exit_codes: FrozenSet[int]) -> Tuple[int, bool]:
    """Reduce pass exit codes to one code and an error flag.

    Returns the first code outside the success set with ``error=True``,
    otherwise the highest in-set code with ``error=False``.
    """
    values = list(codes)
    for code in values:
        if code not in success_exit_codes:
            return code, True
    return (max(values) if values else 0), False


def read_pass_artifact(tool_name: str, index: int, result: ExecutionResult) -> Dict[str, Any]:
    """Load one pass's SARIF artifact.

    Raises:
        MergeError: If the artifact is missing or not a SARIF document.
    """
    path = result.artifact_path
    if path is None or not path.exists():
        raise MergeError(tool_name, index, "artifact missing")
    try:
        document = json.loads(path.read_text(encoding="utf-8", errors="replace"))
    except (OSError, json.JSONDecodeError) as e:
        raise MergeError(tool_name, index, f"unreadable artifact {path}: {e}") from e
    if not isinstance(document, dict) or not isinstance(document.get("runs"), list):
        raise MergeError(tool_name, index, f"artifact {path} has no runs")
    return document


def merge_pass_results(
    tool_name: str,
    results: List[ExecutionResult],
    success_exit_codes: FrozenSet[int],
    artifact_path: Path,
) -> ExecutionResult:
    """Combine the results of every pass into one ExecutionResult.

    An unreadable pass artifact is logged and skipped; the remaining
    passes are still merged. The merged document is written to
    ``artifact_path`` when at least one pass was readable.

    Args:
        tool_name: Tool the passes belong to.
        results: Pass results, in execution order.
        success_exit_codes: The tool's declared success set.
        artifact_path: Where to write the merged SARIF document.

    Returns:
        Merged ExecutionResult.
    """
    documents: List[Dict[str, Any]] = []
    for index, result in enumerate(results):
        try:
            documents.append(read_pass_artifact(tool_name, index, result))
        except MergeError as e:
            LOGGER.warning(f"Skipping pass in merge: {e}")

    merged_path: Optional[Path] = None
    if documents:
        artifact_path.parent.mkdir(parents=True, exist_ok=True)
        artifact_path.write_text(json.dumps(merge_sarif_documents(documents)), encoding="utf-8")
        merged_path = artifact_path

    exit_code, error = reduce_exit_codes((r.exit_code for r in results), success_exit_codes)
    return ExecutionResult(
        tool_name=tool_name,
        exit_code=exit_code,
        stdout="\n".join(r.stdout for r in results if r.stdout),
        stderr="\n".join(r.stderr for r in results if r.stderr),
        artifact_path=merged_path,
        duration_ms=sum(r.duration_ms for r in results),
        timed_out=any(r.timed_out for r in results),
        error=error,
    )


class MergeStrategy:
    """Runs a tool's passes sequentially and merges their artifacts."""

    def __init__(self, plugin: "ScannerPlugin") -> None:
        self._plugin = plugin

    def run(
        self,
        context: ScanContext,
        passes: List[ScanPass],
        artifact_path: Path,
    ) -> ExecutionResult:
        """Execute every pass, then merge.

        Raises:
            ScanCancelledError: If the scan is cancelled between passes.
        """
        tool = self._plugin.name
        results: List[ExecutionResult] = []
        for index, scan_pass in enumerate(passes, 1):
            if context.cancel_token.cancelled:
                raise ScanCancelledError(context.scan_id)
            context.stream_handler.progress(
                context.scan_id, tool, f"Pass {index}/{len(passes)}: {scan_pass.label}",
                pass_index=index, pass_count=len(passes),
            )
            result = self._plugin.invoke(
                context,
                scan_pass.args,
                artifact_path=scan_pass.artifact_path,
                env=scan_pass.env,
                timeout=scan_pass.timeout,
            )
            if result.error:
                LOGGER.warning(f"{tool} pass '{scan_pass.label}' exited with {result.exit_code}")
            results.append(result)

        if context.cancel_token.cancelled:
            raise ScanCancelledError(context.scan_id)
        return merge_pass_results(tool, results, self._plugin.success_exit_codes, artifact_path)
