"""Scan orchestration: the queued -> running -> terminal state machine.

Ties together the availability snapshot, the parallel executor, the
normalizers and the post-processing stages (dedup, ignore patterns,
diff filtering and lifecycle classification) for one scan at a time.
"""

from __future__ import annotations

import shutil
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set

from scanweave.bootstrap.health import AvailabilityProber
from scanweave.bootstrap.paths import ScanweavePaths
from scanweave.config.ignore import IgnorePatterns
from scanweave.core.cancellation import CancellationToken
from scanweave.core.exceptions import ExecutionError, ScanCancelledError, ScanweaveError
from scanweave.core.logging import get_logger
from scanweave.core.models import (
    ExecutionResult,
    NormalizedFinding,
    ScanContext,
    ScanRequest,
    ScanResult,
    ScanStatus,
    ToolRunRecord,
    ToolRunStatus,
)
from scanweave.core.paths import as_list
from scanweave.core.streaming import (
    NullStreamHandler,
    ProgressEvent,
    ProgressEventType,
    StreamHandler,
)
from scanweave.core.subprocess_runner import ProcessRunner
from scanweave.diff.filter import DEFAULT_CONTEXT_LINES, filter_findings_by_diff
from scanweave.diff.models import DiffData
from scanweave.diff.parser import parse_diff
from scanweave.lifecycle.tracker import PriorFinding, classify_findings, deduplicate_findings
from scanweave.pipeline.parallel import DEFAULT_MAX_WORKERS, ParallelToolExecutor, ToolOutcome
from scanweave.plugins.scanners.base import ScannerPlugin
from scanweave.storage.base import DiffCache, ScanStore
from scanweave.storage.memory import InMemoryDiffCache, InMemoryScanStore
from scanweave.strategies.phased import normalize_target_url

LOGGER = get_logger(__name__)

DEFAULT_TOOL_TIMEOUT = 600
NO_TOOLS_AVAILABLE = "no requested tool is available"
ALL_TOOLS_FAILED = "every attempted tool failed"

# Tool outcomes that count as "produced a result".
PRODUCTIVE_STATUSES = frozenset({ToolRunStatus.COMPLETED, ToolRunStatus.TIMED_OUT})


class ScanOrchestrator:
    """Runs scans across all requested tools and aggregates their results.

    Args:
        plugins: Adapters keyed by tool name.
        prober: Availability snapshot owner; probed on first use if empty.
        runner: Process runner shared with the adapters, used to kill
            in-flight processes on cancel.
        store: Persistence for scan results.
        stream_handler: Progress channel for every scan.
        max_workers: Upper bound on concurrently running tools.
        paths: Home directory layout; owns per-scan work dirs.
        diff_context: Lines of slack around modified ranges.
        ignore_patterns: Paths whose findings are always dropped.
        diff_cache: Cache of parsed diffs keyed by scan and comparison key.
        tool_timeout: Default wall-clock budget per tool invocation.
        sequential: Run tools one at a time.
    """

    def __init__(
        self,
        plugins: Mapping[str, ScannerPlugin],
        prober: Optional[AvailabilityProber] = None,
        runner: Optional[ProcessRunner] = None,
        store: Optional[ScanStore] = None,
        stream_handler: Optional[StreamHandler] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        paths: Optional[ScanweavePaths] = None,
        diff_context: int = DEFAULT_CONTEXT_LINES,
        ignore_patterns: Optional[IgnorePatterns] = None,
        diff_cache: Optional[DiffCache] = None,
        tool_timeout: int = DEFAULT_TOOL_TIMEOUT,
        sequential: bool = False,
    ) -> None:
        self._plugins: Dict[str, ScannerPlugin] = {n.lower(): p for n, p in plugins.items()}
        self._prober = prober if prober is not None else AvailabilityProber(self._plugins)
        self._runner = runner if runner is not None else ProcessRunner()
        self._store = store if store is not None else InMemoryScanStore()
        self._stream = stream_handler if stream_handler is not None else NullStreamHandler()
        self._executor = ParallelToolExecutor(max_workers=max_workers, sequential=sequential)
        self._paths = paths if paths is not None else ScanweavePaths.default()
        self._diff_context = diff_context
        self._ignore = ignore_patterns if ignore_patterns is not None else IgnorePatterns([])
        self._diff_cache = diff_cache if diff_cache is not None else InMemoryDiffCache()
        self._tool_timeout = tool_timeout

        self._lock = threading.Lock()
        self._tokens: Dict[str, CancellationToken] = {}
        # Running scans whose cancel() was accepted; guarded by _lock.
        self._cancel_requested: Set[str] = set()

    @property
    def prober(self) -> AvailabilityProber:
        return self._prober

    @property
    def store(self) -> ScanStore:
        return self._store

    def submit(self, request: ScanRequest) -> ScanResult:
        """Record a scan as queued. Submitting the same id twice is a no-op.

        Raises:
            ValueError: If the scan id is not usable as a work directory name
                or a previous finding record is malformed.
        """
        self._paths.scan_work_dir(request.id)
        _prior_findings(request)
        with self._lock:
            existing = self._store.get(request.id)
            if existing is not None:
                return existing
            result = ScanResult(scan_id=request.id, requested_tools=list(request.requested_tools))
            self._store.save(result)
            self._tokens.setdefault(request.id, CancellationToken())
        LOGGER.info(f"Scan {request.id} queued with tools: {', '.join(request.requested_tools) or 'none'}")
        return result

    def get_result(self, scan_id: str) -> Optional[ScanResult]:
        return self._store.get(scan_id)

    def cancel(self, scan_id: str) -> bool:
        """Cancel a queued or running scan.

        Returns:
            True if the scan was live and is now cancelled or cancelling.
        """
        with self._lock:
            result = self._store.get(scan_id)
            if result is None or result.is_terminal:
                return False
            token = self._tokens.setdefault(scan_id, CancellationToken())
            was_queued = result.status == ScanStatus.QUEUED
            if was_queued:
                result.transition(ScanStatus.CANCELLED)
                self._store.save(result)
                self._tokens.pop(scan_id, None)
            else:
                self._cancel_requested.add(scan_id)
        LOGGER.info(f"Cancelling scan {scan_id}")
        token.cancel()
        killed = self._runner.kill_scan(scan_id)
        if killed:
            LOGGER.debug(f"Signalled {killed} process(es) of scan {scan_id}")
        if was_queued:
            self._emit_scan_complete(result)
        return True

    def run(self, request: ScanRequest) -> ScanResult:
        """Execute a scan to a terminal state and persist the result.

        Running an already terminal scan returns the stored result.
        """
        self.submit(request)
        with self._lock:
            result = self._store.get(request.id)
            if result is None or result.is_terminal:
                return result
            token = self._tokens.setdefault(request.id, CancellationToken())
            result.transition(ScanStatus.RUNNING)
            self._store.save(result)

        work_dir = self._paths.scan_work_dir(request.id)
        try:
            work_dir.mkdir(parents=True, exist_ok=True)
            self._execute(request, result, token, work_dir)
        except ScanCancelledError:
            self._finish_cancelled(result)
        except (ScanweaveError, OSError, ValueError) as e:
            LOGGER.error(f"Scan {request.id} failed: {e}")
            self._finish_failed(result, str(e))
        except Exception as e:
            LOGGER.error(f"Scan {request.id} failed unexpectedly: {type(e).__name__}: {e}")
            self._finish_failed(result, f"{type(e).__name__}: {e}")
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
            with self._lock:
                self._tokens.pop(request.id, None)
                self._cancel_requested.discard(request.id)
                self._store.save(result)
            self._emit_scan_complete(result)
        return result

    def _execute(
        self,
        request: ScanRequest,
        result: ScanResult,
        token: CancellationToken,
        work_dir: Path,
    ) -> None:
        if not self._prober.has_snapshot:
            self._prober.probe_all()
        partition = self._prober.filter_to_available(request.requested_tools)
        result.skipped.update(partition.skipped)

        context = ScanContext(
            scan_id=request.id,
            target_path=request.target_path,
            work_dir=work_dir,
            exclude_paths=list(request.exclude_paths) + self._ignore.get_exclude_patterns(),
            timeout=int(request.config.get("tool_timeout") or self._tool_timeout),
            config=dict(request.config),
            languages=list(request.languages),
            cancel_token=token,
            stream_handler=self._stream,
        )

        runnable: List[str] = []
        for name in partition.available:
            plugin = self._plugins.get(name)
            reason = "unknown tool" if plugin is None else plugin.applies_to(context)
            if reason:
                result.skipped[name] = reason
                result.tool_results[name] = ToolRunRecord(name, ToolRunStatus.SKIPPED, error=reason)
            else:
                runnable.append(name)

        if result.skipped:
            LOGGER.info(
                "Skipping: " + ", ".join(f"{n} ({r})" for n, r in sorted(result.skipped.items()))
            )

        discovery = [n for n in runnable if self._plugins[n].discovers_targets]
        outcomes = self._executor.execute(discovery, lambda name: self._run_tool(name, context))
        if discovery:
            self._merge_discovered(outcomes, context)
        scanners = [n for n in runnable if n not in discovery]
        outcomes += self._executor.execute(scanners, lambda name: self._run_tool(name, context))
        findings: List[NormalizedFinding] = []
        for outcome in outcomes:
            result.tool_results[outcome.tool_name] = outcome.record
            findings.extend(outcome.findings)
        if token.cancelled:
            raise ScanCancelledError(request.id)

        findings = deduplicate_findings(findings)
        if self._ignore:
            findings, removed = self._ignore.filter_findings(findings)
            if removed:
                LOGGER.info(f"Ignore patterns removed {removed} finding(s)")
        if request.diff_text is not None:
            diff = self._load_diff(request)
            findings = filter_findings_by_diff(findings, diff, self._diff_context)
        if request.previous_findings:
            result.lifecycle = classify_findings(findings, _prior_findings(request)).fingerprints()
        result.findings = findings

        productive = [o for o in outcomes if o.record.status in PRODUCTIVE_STATUSES]
        if not runnable:
            self._finish(result, token, ScanStatus.FAILED, NO_TOOLS_AVAILABLE)
        elif not productive:
            self._finish(result, token, ScanStatus.FAILED, ALL_TOOLS_FAILED)
        else:
            self._finish(result, token, ScanStatus.COMPLETED)
        LOGGER.info(
            f"Scan {request.id} {result.status.value}: {len(findings)} finding(s) "
            f"from {len(productive)}/{len(runnable)} tool(s)"
        )

    def _run_tool(self, name: str, context: ScanContext) -> ToolOutcome:
        """Run one adapter end to end; never raises for tool-level failures."""
        plugin = self._plugins[name]
        status = self._prober.get_status(name)
        version = status.version if status else None
        self._stream.start_tool(context.scan_id, name)

        def cancelled() -> ToolOutcome:
            self._stream.end_tool(context.scan_id, name, success=False)
            return ToolOutcome(name, ToolRunRecord(name, ToolRunStatus.CANCELLED, version=version))

        if context.cancel_token.cancelled:
            return cancelled()
        try:
            execution = plugin.scan(context)
        except ScanCancelledError:
            return cancelled()
        except ScanweaveError as e:
            LOGGER.error(f"{name} failed: {e}")
            self._stream.end_tool(context.scan_id, name, success=False)
            return ToolOutcome(name, ToolRunRecord(name, ToolRunStatus.FAILED, error=str(e), version=version))

        if context.cancel_token.cancelled:
            return cancelled()

        record = self._record_for(name, execution, version)
        findings: List[NormalizedFinding] = []
        if record.status in PRODUCTIVE_STATUSES:
            findings = self._parse(plugin, execution, context)
        record.finding_count = len(findings)

        for finding in findings:
            self._stream.emit(
                ProgressEvent(
                    ProgressEventType.SCANNER_FINDING,
                    context.scan_id,
                    name,
                    finding.title,
                    finding.to_dict(),
                )
            )
        self._stream.end_tool(
            context.scan_id,
            name,
            success=record.status in PRODUCTIVE_STATUSES,
            finding_count=len(findings),
        )
        return ToolOutcome(name, record, findings)

    def _merge_discovered(self, outcomes: List[ToolOutcome], context: ScanContext) -> None:
        """Append URLs found by discovery tools to the scan's target list."""
        targets = as_list(context.config.get("target_urls"))
        known = {normalize_target_url(u) for u in targets}
        before = len(targets)
        for outcome in outcomes:
            execution = outcome.record.execution
            if outcome.record.status not in PRODUCTIVE_STATUSES or execution is None:
                continue
            plugin = self._plugins[outcome.tool_name]
            try:
                found = plugin.discovered_targets(execution, context)
            except Exception as e:
                LOGGER.warning(f"Failed to read {plugin.name} discoveries: {e}")
                continue
            for url in found:
                key = normalize_target_url(url)
                if key not in known:
                    known.add(key)
                    targets.append(url)
        context.config["target_urls"] = targets
        LOGGER.info(f"Discovery added {len(targets) - before} target URL(s)")

    def _record_for(self, name: str, execution: ExecutionResult, version: Optional[str]) -> ToolRunRecord:
        if execution.timed_out:
            LOGGER.warning(f"{name} timed out, parsing partial output")
            return ToolRunRecord(
                name, ToolRunStatus.TIMED_OUT, execution=execution, error="timed out", version=version
            )
        if execution.error:
            error = str(ExecutionError(name, execution.exit_code, execution.stderr))
            LOGGER.error(error)
            return ToolRunRecord(name, ToolRunStatus.FAILED, execution=execution, error=error, version=version)
        return ToolRunRecord(name, ToolRunStatus.COMPLETED, execution=execution, version=version)

    def _parse(
        self,
        plugin: ScannerPlugin,
        execution: ExecutionResult,
        context: ScanContext,
    ) -> List[NormalizedFinding]:
        try:
            return plugin.parse_output(execution, context)
        except Exception as e:
            LOGGER.warning(f"Failed to parse {plugin.name} output: {e}")
            return []

    def _load_diff(self, request: ScanRequest) -> DiffData:
        key = request.comparison_key
        if key:
            cached = self._diff_cache.get(request.id, key)
            if cached is not None:
                LOGGER.debug(f"Using cached diff for {request.id}/{key}")
                return cached
        diff = parse_diff(request.diff_text or "")
        if key:
            self._diff_cache.put(request.id, key, diff)
        return diff

    def _finish(
        self,
        result: ScanResult,
        token: CancellationToken,
        status: ScanStatus,
        error: Optional[str] = None,
    ) -> None:
        """Apply the terminal status unless a cancel got in first.

        Holds the same lock as :meth:`cancel`, so a scan either reaches
        ``status`` and further cancels are refused, or it ends cancelled.
        """
        with self._lock:
            if token.cancelled or result.scan_id in self._cancel_requested:
                raise ScanCancelledError(result.scan_id)
            result.error = error
            result.transition(status)
            self._store.save(result)

    def _finish_failed(self, result: ScanResult, error: str) -> None:
        result.findings = []
        result.lifecycle = {}
        result.error = error
        if not result.is_terminal:
            result.transition(ScanStatus.FAILED)

    def _finish_cancelled(self, result: ScanResult) -> None:
        LOGGER.info(f"Scan {result.scan_id} cancelled")
        result.findings = []
        result.lifecycle = {}
        for name in result.requested_tools:
            key = name.strip().lower()
            if key and key not in result.skipped and key not in result.tool_results:
                result.tool_results[key] = ToolRunRecord(key, ToolRunStatus.CANCELLED)
        result.transition(ScanStatus.CANCELLED)

    def _emit_scan_complete(self, result: ScanResult) -> None:
        self._stream.emit(
            ProgressEvent(
                ProgressEventType.SCAN_COMPLETE,
                result.scan_id,
                None,
                f"Scan {result.status.value}",
                {
                    "status": result.status.value,
                    "finding_count": len(result.findings),
                    "duration_ms": result.duration_ms,
                    "skipped": dict(result.skipped),
                },
            )
        )


def _prior_findings(request: ScanRequest) -> List[PriorFinding]:
    return [
        p if isinstance(p, PriorFinding) else PriorFinding.from_dict(p)
        for p in request.previous_findings
    ]
