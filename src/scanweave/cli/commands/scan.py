"""Scan command implementation."""

from __future__ import annotations

import hashlib
import json
import sys
import threading
import uuid
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, List, Optional

from scanweave.bootstrap.health import AvailabilityProber
from scanweave.bootstrap.paths import ScanweavePaths
from scanweave.cli.commands import Command
from scanweave.cli.config_bridge import ConfigBridge
from scanweave.cli.exit_codes import (
    EXIT_INVALID_USAGE,
    EXIT_ISSUES_FOUND,
    EXIT_SCANNER_ERROR,
    EXIT_SUCCESS,
)
from scanweave.config.ignore import load_ignore_patterns
from scanweave.config.models import ScanweaveConfig
from scanweave.core.logging import get_logger
from scanweave.core.models import NormalizedFinding, ScanRequest, ScanResult, ScanStatus, Severity
from scanweave.core.streaming import CLIStreamHandler, NullStreamHandler, StreamHandler
from scanweave.core.subprocess_runner import ProcessRunner
from scanweave.lifecycle.tracker import PriorFinding
from scanweave.pipeline.orchestrator import ScanOrchestrator
from scanweave.pipeline.selection import detect_project
from scanweave.pipeline.worker import InMemoryWorkQueue, ScanJob, ScanWorker
from scanweave.plugins.reporters import get_reporter_plugin
from scanweave.plugins.scanners import build_scanner_registry
from scanweave.storage.filesystem import JsonFileDiffCache, JsonFileScanStore

LOGGER = get_logger(__name__)

JOIN_INTERVAL = 0.5


def check_severity_threshold(findings: List[NormalizedFinding], threshold: Optional[str]) -> bool:
    """True if any finding is at or above ``threshold``; "none" never trips."""
    if not threshold or threshold.lower() == "none":
        return False
    minimum = Severity(threshold.lower()).rank
    return any(f.severity.rank >= minimum for f in findings)


def load_baseline(path: Path) -> List[Dict[str, Any]]:
    """Read prior findings from a JSON report or a list of prior records.

    Raises:
        ValueError: If the file is not valid JSON or has no findings list.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid baseline file {path}: {e}") from e
    if isinstance(data, dict):
        data = data.get("findings")
    if not isinstance(data, list):
        raise ValueError(f"Baseline file {path} has no findings list")
    return [
        {key: item[key] for key in ("fingerprint", "status", "first_seen", "last_seen") if key in item}
        for item in data
        if isinstance(item, dict) and item.get("fingerprint")
    ]


class ScanCommand(Command):
    """Executes security scanning."""

    needs_config = True

    @property
    def name(self) -> str:
        """Command identifier."""
        return "scan"

    def execute(self, args: Namespace, config: Optional[ScanweaveConfig] = None) -> int:
        """Execute the scan command.

        Args:
            args: Parsed command-line arguments.
            config: Loaded configuration.

        Returns:
            Exit code based on scan results.
        """
        if config is None:
            LOGGER.error("Configuration is required for scan command")
            return EXIT_SCANNER_ERROR

        project_root = Path(args.path).resolve()
        if not project_root.is_dir():
            LOGGER.error(f"Path does not exist or is not a directory: {project_root}")
            return EXIT_INVALID_USAGE

        try:
            request = self._build_request(args, config, project_root)
        except (OSError, ValueError) as e:
            LOGGER.error(str(e))
            return EXIT_INVALID_USAGE

        result = self._run_scan(args, config, request, project_root)

        output_format = config.output.format or "summary"
        reporter = get_reporter_plugin(output_format)
        if reporter is None:
            LOGGER.error(f"Reporter plugin '{output_format}' not found")
            return EXIT_SCANNER_ERROR

        output_path = getattr(args, "output", None)
        reporter.write(result, Path(output_path) if output_path else None)

        if result.status != ScanStatus.COMPLETED:
            return EXIT_SCANNER_ERROR
        if check_severity_threshold(result.findings, config.fail_on):
            return EXIT_ISSUES_FOUND
        return EXIT_SUCCESS

    def _build_request(self, args: Namespace, config: ScanweaveConfig, project_root: Path) -> ScanRequest:
        profile = detect_project(project_root)
        tools = ConfigBridge.requested_tools(args, config, profile)

        scan_config = config.to_scan_config()
        scan_config.update(profile.iac_flags())
        scan_config["tool_timeout"] = config.pipeline.tool_timeout

        diff_text: Optional[str] = None
        comparison_key: Optional[str] = None
        diff_path = getattr(args, "diff", None)
        if diff_path:
            diff_text = Path(diff_path).read_text(encoding="utf-8", errors="replace")
            comparison_key = hashlib.sha256(diff_text.encode("utf-8")).hexdigest()[:16]

        previous: List[PriorFinding] = []
        baseline = getattr(args, "baseline", None)
        if baseline:
            previous = [PriorFinding.from_dict(item) for item in load_baseline(Path(baseline))]

        scan_id = getattr(args, "scan_id", None) or f"scan-{uuid.uuid4().hex[:12]}"
        ScanweavePaths.default().scan_work_dir(scan_id)

        return ScanRequest(
            id=scan_id,
            target_path=project_root,
            requested_tools=tools,
            languages=config.project.languages or profile.language_names,
            config=scan_config,
            diff_text=diff_text,
            comparison_key=comparison_key,
            previous_findings=previous,
        )

    def _run_scan(
        self,
        args: Namespace,
        config: ScanweaveConfig,
        request: ScanRequest,
        project_root: Path,
    ) -> ScanResult:
        """Run one scan on a worker thread; Ctrl-C cancels it cleanly."""
        paths = ScanweavePaths.default()
        paths.ensure_directories()

        runner = ProcessRunner(output_limit=config.pipeline.output_limit)
        plugins = build_scanner_registry(runner)

        stream_handler: StreamHandler = NullStreamHandler()
        if not getattr(args, "quiet", False):
            stream_handler = CLIStreamHandler(output=sys.stderr, show_output=getattr(args, "verbose", False))

        orchestrator = ScanOrchestrator(
            plugins,
            prober=AvailabilityProber(plugins, timeout=config.pipeline.probe_timeout),
            runner=runner,
            store=JsonFileScanStore(paths.cache_dir),
            stream_handler=stream_handler,
            max_workers=config.pipeline.max_workers,
            paths=paths,
            diff_context=config.diff.context_lines,
            ignore_patterns=load_ignore_patterns(project_root, config.ignore),
            diff_cache=JsonFileDiffCache(paths.cache_dir),
            tool_timeout=config.pipeline.tool_timeout,
            sequential=getattr(args, "sequential", False),
        )
        orchestrator.submit(request)

        work_queue = InMemoryWorkQueue()
        work_queue.put(ScanJob(request))
        worker = ScanWorker(work_queue, orchestrator)
        thread = threading.Thread(target=worker.run_once, kwargs={"timeout": 0}, name="scanweave-scan")
        thread.start()
        try:
            while thread.is_alive():
                thread.join(JOIN_INTERVAL)
        except KeyboardInterrupt:
            LOGGER.warning(f"Interrupted, cancelling scan {request.id}")
            orchestrator.cancel(request.id)
            thread.join()

        result = orchestrator.get_result(request.id)
        if result is None:
            # The worker thread died before persisting anything.
            result = ScanResult(
                scan_id=request.id,
                requested_tools=list(request.requested_tools),
                status=ScanStatus.FAILED,
                error="scan did not run",
            )
        return result
