"""Progress channel for live scan events.

Publish-only: handlers receive events from worker threads and must be
thread-safe. Implementations:
- CLI: print progress to the console
- Callback: forward events to a user function
- Collecting: keep events in memory (observers, tests)
- Null: discard everything
"""

from __future__ import annotations

import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TextIO


class ProgressEventType(str, Enum):
    """Kinds of progress events emitted during a scan."""

    SCANNER_START = "scanner_start"
    SCANNER_PROGRESS = "scanner_progress"
    SCANNER_LOG = "scanner_log"
    SCANNER_FINDING = "scanner_finding"
    SCANNER_COMPLETE = "scanner_complete"
    SCAN_PHASE = "scan_phase"
    SCAN_COMPLETE = "scan_complete"


class StreamType(str, Enum):
    """Origin of a log line."""

    STDOUT = "stdout"
    STDERR = "stderr"
    STATUS = "status"


@dataclass
class ProgressEvent:
    """A single progress event."""

    event_type: ProgressEventType
    scan_id: str
    tool_name: Optional[str] = None
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "scan_id": self.scan_id,
            "tool_name": self.tool_name,
            "message": self.message,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat(),
        }


class StreamHandler(ABC):
    """Abstract base class for progress handlers.

    Implementations must be thread-safe as multiple tools may emit
    events concurrently from different threads.
    """

    @abstractmethod
    def emit(self, event: ProgressEvent) -> None:
        """Publish a progress event.

        Args:
            event: The event to publish.
        """

    def start_tool(self, scan_id: str, tool_name: str) -> None:
        self.emit(ProgressEvent(ProgressEventType.SCANNER_START, scan_id, tool_name, "Starting"))

    def end_tool(self, scan_id: str, tool_name: str, success: bool, finding_count: int = 0) -> None:
        self.emit(
            ProgressEvent(
                ProgressEventType.SCANNER_COMPLETE,
                scan_id,
                tool_name,
                "Completed" if success else "Failed",
                {"success": success, "finding_count": finding_count},
            )
        )

    def log_line(
        self,
        scan_id: str,
        tool_name: str,
        line: str,
        stream_type: StreamType = StreamType.STDOUT,
    ) -> None:
        self.emit(
            ProgressEvent(
                ProgressEventType.SCANNER_LOG,
                scan_id,
                tool_name,
                line,
                {"stream": stream_type.value},
            )
        )

    def progress(self, scan_id: str, tool_name: str, message: str, **data: Any) -> None:
        self.emit(ProgressEvent(ProgressEventType.SCANNER_PROGRESS, scan_id, tool_name, message, data))


class NullStreamHandler(StreamHandler):
    """No-op handler, used when nobody is listening."""

    def emit(self, event: ProgressEvent) -> None:
        pass


class CallbackStreamHandler(StreamHandler):
    """Forwards every event to a callback."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            self._callback(event)


class CollectingStreamHandler(StreamHandler):
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self._events: List[ProgressEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[ProgressEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: ProgressEventType) -> List[ProgressEvent]:
        return [e for e in self.events if e.event_type == event_type]


class CLIStreamHandler(StreamHandler):
    """Thread-safe console handler.

    Status events are always printed; raw tool log lines only when
    ``show_output`` is set.
    """

    def __init__(self, output: TextIO = sys.stderr, show_output: bool = False) -> None:
        self._output = output
        self._show_output = show_output
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        if event.event_type == ProgressEventType.SCANNER_LOG and not self._show_output:
            return
        if event.event_type == ProgressEventType.SCANNER_FINDING:
            return

        if event.event_type == ProgressEventType.SCANNER_LOG:
            line = f"  {event.tool_name}: {event.message}"
        elif event.tool_name:
            line = f"[{event.tool_name}] {event.message}"
        else:
            line = f"[scan {event.scan_id}] {event.message}"

        with self._lock:
            self._output.write(line + "\n")
            self._output.flush()
