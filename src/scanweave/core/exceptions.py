"""Error taxonomy for scan orchestration.

Failures are isolated per tool: most of these are caught at the tool
boundary and recorded on that tool's result rather than propagated to
the whole scan.
"""

from __future__ import annotations

from typing import Optional


class ScanweaveError(Exception):
    """Base class for all scanweave errors."""


class ToolUnavailableError(ScanweaveError):
    """A tool's executable or runtime could not be found or probed."""

    def __init__(self, tool_name: str, reason: str = "not available") -> None:
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"{tool_name}: {reason}")


class ExecutionTimeoutError(ScanweaveError):
    """A tool invocation exceeded its wall-clock budget."""

    def __init__(self, tool_name: str, timeout: float) -> None:
        self.tool_name = tool_name
        self.timeout = timeout
        super().__init__(f"{tool_name} timed out after {timeout}s")


class ExecutionError(ScanweaveError):
    """A tool exited with a code outside its declared success set."""

    def __init__(self, tool_name: str, exit_code: int, stderr: str = "") -> None:
        self.tool_name = tool_name
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"{tool_name} exited with code {exit_code}"
        if stderr.strip():
            message = f"{message}: {stderr.strip().splitlines()[-1]}"
        super().__init__(message)


class ParseError(ScanweaveError):
    """A result artifact was missing or malformed."""

    def __init__(self, tool_name: str, detail: str, path: Optional[str] = None) -> None:
        self.tool_name = tool_name
        self.path = path
        location = f" ({path})" if path else ""
        super().__init__(f"Cannot parse {tool_name} output{location}: {detail}")


class MergeError(ScanweaveError):
    """One pass of a multi-pass strategy produced an unreadable artifact."""

    def __init__(self, tool_name: str, pass_index: int, detail: str) -> None:
        self.tool_name = tool_name
        self.pass_index = pass_index
        super().__init__(f"{tool_name} pass {pass_index}: {detail}")


class CommandNotAllowedError(ScanweaveError):
    """A command or argument was rejected before spawning a process."""


class ScanCancelledError(ScanweaveError):
    """Raised inside a tool task once its scan has been cancelled."""

    def __init__(self, scan_id: str) -> None:
        self.scan_id = scan_id
        super().__init__(f"Scan {scan_id} was cancelled")


class InvalidStateTransition(ScanweaveError):
    """A scan was moved between states the lifecycle does not allow."""

    def __init__(self, scan_id: str, current: str, target: str) -> None:
        self.scan_id = scan_id
        self.current = current
        self.target = target
        super().__init__(f"Scan {scan_id}: cannot move from {current} to {target}")


class ContainerError(ScanweaveError):
    """The container runtime failed to start or reach a warm container."""
