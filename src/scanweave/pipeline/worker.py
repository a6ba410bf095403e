"""Work queue and worker loop for running submitted scans."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Set

from scanweave.core.logging import get_logger
from scanweave.core.models import ScanRequest, ScanResult
from scanweave.pipeline.orchestrator import ScanOrchestrator

LOGGER = get_logger(__name__)

DEFAULT_POLL_TIMEOUT = 1.0


@dataclass
class ScanJob:
    """A queued scan. The scan id is the idempotency key."""

    request: ScanRequest

    @property
    def key(self) -> str:
        return self.request.id


class WorkQueue(ABC):
    """Delivers scan jobs to workers."""

    @abstractmethod
    def put(self, job: ScanJob) -> bool:
        """Enqueue a job.

        Returns:
            False if a job with the same key was already accepted.
        """

    @abstractmethod
    def get(self, timeout: Optional[float] = None) -> Optional[ScanJob]:
        """Take the next job, or None if none arrived within ``timeout``."""

    @abstractmethod
    def task_done(self) -> None:
        """Mark the last job taken by this worker as finished."""


class InMemoryWorkQueue(WorkQueue):
    """Thread-safe FIFO queue that accepts each scan id once."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[ScanJob]" = queue.Queue()
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

    def put(self, job: ScanJob) -> bool:
        with self._lock:
            if job.key in self._seen:
                LOGGER.debug(f"Ignoring duplicate job {job.key}")
                return False
            self._seen.add(job.key)
        self._queue.put(job)
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[ScanJob]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def task_done(self) -> None:
        self._queue.task_done()

    def join(self) -> None:
        """Block until every accepted job has been marked done."""
        self._queue.join()

    def __len__(self) -> int:
        return self._queue.qsize()


class ScanWorker:
    """Pulls jobs from a queue and runs them through the orchestrator."""

    def __init__(
        self,
        work_queue: WorkQueue,
        orchestrator: ScanOrchestrator,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
    ) -> None:
        self._queue = work_queue
        self._orchestrator = orchestrator
        self._poll_timeout = poll_timeout

    def run_once(self, timeout: Optional[float] = None) -> Optional[ScanResult]:
        """Run at most one job.

        Returns:
            The job's terminal result, or None if the queue stayed empty.
        """
        job = self._queue.get(timeout=self._poll_timeout if timeout is None else timeout)
        if job is None:
            return None
        try:
            LOGGER.info(f"Worker picked up scan {job.key}")
            return self._orchestrator.run(job.request)
        finally:
            self._queue.task_done()

    def run_forever(self, stop_event: threading.Event) -> int:
        """Process jobs until ``stop_event`` is set.

        Errors of one job are logged and do not stop the loop.

        Returns:
            Number of jobs processed.
        """
        processed = 0
        while not stop_event.is_set():
            try:
                result = self.run_once()
            except Exception as e:
                LOGGER.error(f"Scan job failed: {e}")
                processed += 1
                continue
            if result is not None:
                processed += 1
        LOGGER.debug(f"Worker stopped after {processed} job(s)")
        return processed
