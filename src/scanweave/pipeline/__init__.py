"""Scan pipeline: tool selection, parallel execution and orchestration."""

from scanweave.pipeline.orchestrator import ScanOrchestrator
from scanweave.pipeline.parallel import ParallelToolExecutor, ToolOutcome
from scanweave.pipeline.selection import ProjectProfile, detect_project, select_tools
from scanweave.pipeline.worker import InMemoryWorkQueue, ScanJob, ScanWorker, WorkQueue

__all__ = [
    "InMemoryWorkQueue",
    "ParallelToolExecutor",
    "ProjectProfile",
    "ScanJob",
    "ScanOrchestrator",
    "ScanWorker",
    "ToolOutcome",
    "WorkQueue",
    "detect_project",
    "select_tools",
]
