"""Parallel tool execution using ThreadPoolExecutor."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from scanweave.core.logging import get_logger
from scanweave.core.models import NormalizedFinding, ToolRunRecord, ToolRunStatus

LOGGER = get_logger(__name__)

# Default number of worker threads
DEFAULT_MAX_WORKERS = 4


@dataclass
class ToolOutcome:
    """Result of running one tool: its record and normalized findings."""

    tool_name: str
    record: ToolRunRecord
    findings: List[NormalizedFinding] = field(default_factory=list)


ToolTask = Callable[[str], ToolOutcome]


def failed_outcome(tool_name: str, error: str) -> ToolOutcome:
    return ToolOutcome(tool_name, ToolRunRecord(tool_name, ToolRunStatus.FAILED, error=error))


class ParallelToolExecutor:
    """Runs one task per tool on a bounded thread pool.

    A task that raises is recorded as a failed outcome for its tool and
    never affects its siblings. Outcomes are returned in the order the
    tools were given, regardless of completion order.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        sequential: bool = False,
    ) -> None:
        """Initialize the executor.

        Args:
            max_workers: Maximum number of concurrent tool threads.
            sequential: If True, run tools one after another (for debugging).
        """
        self._max_workers = max(1, max_workers)
        self._sequential = sequential
        self._results_lock = threading.Lock()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def execute(self, tool_names: List[str], task: ToolTask) -> List[ToolOutcome]:
        """Run ``task`` for every tool and collect the outcomes.

        Args:
            tool_names: Tools to run.
            task: Called with a tool name, returns that tool's outcome.

        Returns:
            One outcome per tool, in input order.
        """
        if not tool_names:
            return []

        if self._sequential:
            outcomes = {name: self._run_safely(name, task) for name in tool_names}
        else:
            outcomes = self._execute_parallel(tool_names, task)
        return [outcomes[name] for name in tool_names]

    def _execute_parallel(self, tool_names: List[str], task: ToolTask) -> Dict[str, ToolOutcome]:
        outcomes: Dict[str, ToolOutcome] = {}
        workers = min(self._max_workers, len(tool_names))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scanweave-tool") as executor:
            future_to_tool = {executor.submit(task, name): name for name in tool_names}

            for future in as_completed(future_to_tool):
                tool_name = future_to_tool[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    LOGGER.error(f"Tool {tool_name} raised exception: {e}")
                    outcome = failed_outcome(tool_name, str(e))
                with self._results_lock:
                    outcomes[tool_name] = outcome

        return outcomes

    def _run_safely(self, tool_name: str, task: ToolTask) -> ToolOutcome:
        try:
            return task(tool_name)
        except Exception as e:
            LOGGER.error(f"Tool {tool_name} raised exception: {e}")
            return failed_outcome(tool_name, str(e))
