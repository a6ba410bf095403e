"""Execution engine for external tools.

Runs one tool invocation as a subprocess with an explicit argument vector,
working directory, environment overrides and a hard wall-clock timeout.
Output lines are streamed to the scan's progress channel while being
captured for the result. The engine never reads result artifacts.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Dict, FrozenSet, Iterable, List, Optional, Set

from scanweave.core.exceptions import CommandNotAllowedError, ScanweaveError, ToolUnavailableError
from scanweave.core.logging import get_logger
from scanweave.core.models import ExecutionResult
from scanweave.core.streaming import NullStreamHandler, StreamHandler, StreamType

LOGGER = get_logger(__name__)

# Executables the engine is willing to spawn.
ALLOWED_COMMANDS: FrozenSet[str] = frozenset({
    "semgrep",
    "trivy",
    "gitleaks",
    "checkov",
    "bandit",
    "gosec",
    "katana",
    "nuclei",
    "trufflehog",
    "docker",
})

# Shell metacharacters rejected in arguments. Docker argv is exempt since
# its --format templates legitimately contain braces.
DANGEROUS_CHARS = re.compile(r"[;&|`$(){}\[\]<>!*?#~]")
SANITIZE_EXEMPT: FrozenSet[str] = frozenset({"docker"})

VERSION_PATTERN = re.compile(r"\d+\.\d+(?:\.\d+)?")

DEFAULT_TIMEOUT = 600
DEFAULT_OUTPUT_LIMIT = 1024 * 1024
KILL_GRACE_SECONDS = 5.0
TRUNCATION_MARKER = "[output truncated]"


@dataclass
class ToolInvocation:
    """One process launch request.

    Attributes:
        tool_name: Adapter name, used for logging and progress events.
        argv: Executable followed by its arguments; never passed to a shell.
        cwd: Working directory for the process.
        env: Environment overrides merged over the current environment.
        timeout: Hard wall-clock limit in seconds.
        artifact_path: File the tool is expected to write, if any.
        scan_id: Owning scan, used to cancel every process of a scan.
        stream_handler: Receives each output line as a log event.
    """

    tool_name: str
    argv: List[str]
    cwd: Path
    env: Dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    artifact_path: Optional[Path] = None
    scan_id: Optional[str] = None
    stream_handler: Optional[StreamHandler] = None


class _BoundedBuffer:
    """Collects output lines up to a byte budget."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._size = 0
        self._lines: List[str] = []
        self.truncated = False

    def append(self, line: str) -> None:
        if self.truncated:
            return
        size = len(line) + 1
        if self._size + size > self._limit:
            self.truncated = True
            self._lines.append(TRUNCATION_MARKER)
            return
        self._size += size
        self._lines.append(line)

    def text(self) -> str:
        return "\n".join(self._lines)


def command_name(executable: str) -> str:
    """Return the bare command name of an executable path."""
    name = Path(executable).name
    if name.lower().endswith(".exe"):
        name = name[:-4]
    return name


class ProcessRunner:
    """Spawns tool processes with timeouts and per-scan cancellation.

    Thread-safe: one runner is shared by every tool task of every scan.
    """

    def __init__(
        self,
        allowed_commands: Iterable[str] = ALLOWED_COMMANDS,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
        kill_grace: float = KILL_GRACE_SECONDS,
    ) -> None:
        self._allowed = frozenset(allowed_commands)
        self._output_limit = output_limit
        self._kill_grace = kill_grace
        self._lock = threading.Lock()
        self._processes: Dict[str, Set[subprocess.Popen]] = {}

    @property
    def allowed_commands(self) -> FrozenSet[str]:
        return self._allowed

    def validate(self, argv: List[str]) -> None:
        """Reject commands outside the allowlist and unsafe arguments.

        Raises:
            CommandNotAllowedError: If the command or an argument is rejected.
        """
        if not argv:
            raise CommandNotAllowedError("Empty argument vector")

        name = command_name(argv[0])
        if name not in self._allowed:
            raise CommandNotAllowedError(f"Command not allowed: {name}")

        if name in SANITIZE_EXEMPT:
            return
        for arg in argv[1:]:
            if DANGEROUS_CHARS.search(arg):
                raise CommandNotAllowedError(f"Argument contains forbidden characters: {arg!r}")

    def run(self, invocation: ToolInvocation) -> ExecutionResult:
        """Run a tool invocation to completion or timeout.

        A timed out process is terminated, escalating to a kill after a
        grace period; the result is marked ``timed_out`` and still points
        at whatever artifact exists.

        Args:
            invocation: What to run and how.

        Returns:
            ExecutionResult for the invocation.

        Raises:
            CommandNotAllowedError: If validation fails.
            ToolUnavailableError: If the executable cannot be found.
        """
        self.validate(invocation.argv)
        handler = invocation.stream_handler or NullStreamHandler()
        env = self._build_env(invocation.env)

        LOGGER.debug(f"Running {invocation.tool_name}: {' '.join(invocation.argv)}")
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                invocation.argv,
                cwd=str(invocation.cwd),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise ToolUnavailableError(
                invocation.tool_name, f"executable not found: {invocation.argv[0]}"
            ) from e

        self._register(invocation.scan_id, proc)
        stdout = _BoundedBuffer(self._output_limit)
        stderr = _BoundedBuffer(self._output_limit)
        timed_out = False
        try:
            readers = [
                self._start_reader(proc.stdout, stdout, StreamType.STDOUT, invocation, handler),
                self._start_reader(proc.stderr, stderr, StreamType.STDERR, invocation, handler),
            ]
            try:
                proc.wait(timeout=invocation.timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                LOGGER.warning(
                    f"{invocation.tool_name} exceeded {invocation.timeout}s timeout, terminating"
                )
                self._terminate(proc)
            for reader in readers:
                reader.join(timeout=1)
            for pipe in (proc.stdout, proc.stderr):
                if pipe is not None:
                    pipe.close()
        finally:
            self._unregister(invocation.scan_id, proc)

        duration_ms = int((time.monotonic() - start) * 1000)
        artifact = invocation.artifact_path
        if artifact is not None and not artifact.exists():
            artifact = None

        exit_code = proc.returncode if proc.returncode is not None else -1
        LOGGER.debug(
            f"{invocation.tool_name} exited with {exit_code} in {duration_ms}ms"
            f"{' (timed out)' if timed_out else ''}"
        )
        return ExecutionResult(
            tool_name=invocation.tool_name,
            exit_code=exit_code,
            stdout=stdout.text(),
            stderr=stderr.text(),
            artifact_path=artifact,
            duration_ms=duration_ms,
            timed_out=timed_out,
        )

    def kill_scan(self, scan_id: str) -> int:
        """Terminate every in-flight process of a scan.

        Returns:
            Number of processes signalled.
        """
        with self._lock:
            processes = list(self._processes.get(scan_id, ()))
        for proc in processes:
            LOGGER.info(f"Terminating process {proc.pid} of scan {scan_id}")
            self._terminate(proc)
        return len(processes)

    def active_processes(self, scan_id: str) -> int:
        with self._lock:
            return len(self._processes.get(scan_id, ()))

    def is_command_available(self, command: str) -> bool:
        """Check whether a command resolves on PATH."""
        return shutil.which(command) is not None

    def get_command_version(self, argv: List[str], timeout: float = 5) -> Optional[str]:
        """Run a version command and extract the first version number.

        Returns:
            Version string such as ``1.56.0``, or None if unavailable.
        """
        try:
            result = self.run(
                ToolInvocation(
                    tool_name=command_name(argv[0]),
                    argv=argv,
                    cwd=Path.cwd(),
                    timeout=timeout,
                )
            )
        except ScanweaveError as e:
            LOGGER.debug(f"Version check failed for {argv[0]}: {e}")
            return None

        if result.timed_out:
            return None
        output = result.stdout.strip() or result.stderr.strip()
        first_line = output.splitlines()[0] if output else ""
        match = VERSION_PATTERN.search(first_line)
        return match.group(0) if match else None

    def _build_env(self, overrides: Dict[str, str]) -> Dict[str, str]:
        env = dict(os.environ)
        env["PYTHONUTF8"] = "1"
        env["PYTHONIOENCODING"] = "utf-8"
        env.update(overrides)
        return env

    def _start_reader(
        self,
        stream: Optional[IO[str]],
        buffer: _BoundedBuffer,
        stream_type: StreamType,
        invocation: ToolInvocation,
        handler: StreamHandler,
    ) -> threading.Thread:
        def read() -> None:
            if stream is None:
                return
            for raw in stream:
                line = raw.rstrip("\n\r")
                buffer.append(line)
                if invocation.scan_id:
                    handler.log_line(invocation.scan_id, invocation.tool_name, line, stream_type)

        thread = threading.Thread(target=read, daemon=True)
        thread.start()
        return thread

    def _terminate(self, proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=self._kill_grace)
        except subprocess.TimeoutExpired:
            LOGGER.warning(f"Process {proc.pid} ignored SIGTERM, killing")
            proc.kill()
            proc.wait()

    def _register(self, scan_id: Optional[str], proc: subprocess.Popen) -> None:
        if scan_id is None:
            return
        with self._lock:
            self._processes.setdefault(scan_id, set()).add(proc)

    def _unregister(self, scan_id: Optional[str], proc: subprocess.Popen) -> None:
        if scan_id is None:
            return
        with self._lock:
            procs = self._processes.get(scan_id)
            if procs is None:
                return
            procs.discard(proc)
            if not procs:
                del self._processes[scan_id]
