"""Long-lived ("warm") containers shared across scans.

A warm container is started once and reused by later scans. Access is
serialized with a per-container lock: the acquirer gets a handle and must
release it, either explicitly or by leaving a ``with`` block.
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from scanweave.core.exceptions import ContainerError
from scanweave.core.logging import get_logger
from scanweave.core.models import ExecutionResult
from scanweave.core.subprocess_runner import ProcessRunner, ToolInvocation

LOGGER = get_logger(__name__)

HOST_PORT_RANGE = (10000, 60000)
STATUS_POLL_INTERVAL = 2.0
CONTAINER_UP_TIMEOUT = 90.0
READY_TIMEOUT_FRESH = 90.0
READY_TIMEOUT_REUSED = 10.0
READY_POLL_INTERVAL = 1.0
DOCKER_TIMEOUT = 60

ReadinessCheck = Callable[[str], bool]


@dataclass
class ContainerSpec:
    """How to start a warm container.

    Attributes:
        name: Fixed container name, used to find it again across processes.
        image: Image reference.
        container_port: Port the service listens on inside the container.
        command: Arguments appended after the image.
        env: Environment variables passed with ``-e``.
    """

    name: str
    image: str
    container_port: int = 8080
    command: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)


def parse_host_port(output: str) -> Optional[int]:
    """Extract the host port from ``docker port`` output."""
    for line in output.splitlines():
        _, sep, port = line.strip().rpartition(":")
        if sep and port.isdigit():
            return int(port)
    return None


class WarmContainer:
    """A reusable container guarded by an acquire/release lock.

    Args:
        spec: Container definition.
        readiness_check: Called with the base URL; True once the service answers.
        runner: Process runner used for docker commands.
        host: Host interface the published port is reached on.
    """

    def __init__(
        self,
        spec: ContainerSpec,
        readiness_check: ReadinessCheck,
        runner: Optional[ProcessRunner] = None,
        host: str = "127.0.0.1",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.spec = spec
        self._ready = readiness_check
        self._runner = runner or ProcessRunner()
        self._host = host
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._holder: Optional[str] = None
        self.host_port: Optional[int] = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def base_url(self) -> str:
        if self.host_port is None:
            raise ContainerError(f"Container {self.name} has no published port")
        return f"http://{self._host}:{self.host_port}"

    @property
    def holder(self) -> Optional[str]:
        """Scan currently holding the container, if any."""
        return self._holder

    def acquire(self, timeout: Optional[float] = None, holder: Optional[str] = None) -> "WarmContainerHandle":
        """Take exclusive use of the container, starting it if needed.

        Args:
            timeout: Seconds to wait for another holder; None waits forever.
            holder: Label of the acquirer, usually the scan id.

        Raises:
            ContainerError: On lock timeout or when the container cannot be made ready.
        """
        acquired = self._lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise ContainerError(
                f"Timed out after {timeout}s waiting for container {self.name} (held by {self._holder})"
            )
        try:
            self.ensure_ready()
        except BaseException:
            self._lock.release()
            raise
        self._holder = holder
        LOGGER.debug(f"Container {self.name} acquired by {holder}")
        return WarmContainerHandle(self, holder)

    def _release(self, holder: Optional[str]) -> None:
        LOGGER.debug(f"Container {self.name} released by {holder}")
        self._holder = None
        self._lock.release()

    def ensure_ready(self) -> None:
        """Reuse a running container or start a fresh one, then wait for readiness.

        A reused container that does not answer within the short readiness
        window is removed and started again.
        """
        status = self.inspect_status()
        if status and status.startswith("Up"):
            self.host_port = self._lookup_port()
            if self.host_port is not None and self._wait_until_ready(READY_TIMEOUT_REUSED):
                LOGGER.info(f"Reusing container {self.name} on port {self.host_port}")
                return
            LOGGER.warning(f"Container {self.name} is running but not answering, recreating")
            self.stop()
        elif status:
            LOGGER.info(f"Removing stale container {self.name} ({status})")
            self.stop()

        self._start()
        self._wait_until_up()
        if not self._wait_until_ready(READY_TIMEOUT_FRESH):
            raise ContainerError(f"Container {self.name} did not become ready in {READY_TIMEOUT_FRESH:.0f}s")
        LOGGER.info(f"Container {self.name} ready on port {self.host_port}")

    def inspect_status(self) -> Optional[str]:
        """Return the docker status line (``Up ...``, ``Exited ...``), or None if absent."""
        result = self._docker([
            "ps", "-a",
            "--filter", f"name=^{self.name}$",
            "--format", "{{.Status}}",
        ])
        if result.exit_code != 0:
            raise ContainerError(f"docker ps failed: {result.stderr.strip()}")
        lines = result.stdout.strip().splitlines()
        return lines[0].strip() if lines else None

    def stop(self) -> None:
        """Remove the container; missing containers are ignored."""
        self._docker(["rm", "-f", self.name])
        self.host_port = None

    def _lookup_port(self) -> Optional[int]:
        result = self._docker(["port", self.name, str(self.spec.container_port)])
        if result.exit_code != 0:
            return None
        return parse_host_port(result.stdout)

    def _start(self) -> None:
        port = random.randrange(*HOST_PORT_RANGE)
        args = [
            "run", "-d",
            "--name", self.name,
            "-p", f"{port}:{self.spec.container_port}",
        ]
        for key, value in sorted(self.spec.env.items()):
            args.extend(["-e", f"{key}={value}"])
        args.append(self.spec.image)
        args.extend(self.spec.command)

        LOGGER.info(f"Starting container {self.name} from {self.spec.image} on port {port}")
        result = self._docker(args)
        if result.exit_code != 0:
            raise ContainerError(f"Failed to start container {self.name}: {result.stderr.strip()}")
        self.host_port = port

    def _wait_until_up(self) -> None:
        deadline = self._clock() + CONTAINER_UP_TIMEOUT
        while True:
            status = self.inspect_status()
            if status and status.startswith("Up"):
                return
            if status and status.startswith("Exited"):
                raise ContainerError(f"Container {self.name} exited during startup: {status}")
            if self._clock() >= deadline:
                raise ContainerError(f"Container {self.name} not running after {CONTAINER_UP_TIMEOUT:.0f}s")
            self._sleep(STATUS_POLL_INTERVAL)

    def _wait_until_ready(self, timeout: float) -> bool:
        deadline = self._clock() + timeout
        while True:
            if self._ready(self.base_url):
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(READY_POLL_INTERVAL)

    def _docker(self, args: List[str]) -> ExecutionResult:
        return self._runner.run(
            ToolInvocation(
                tool_name="docker",
                argv=["docker", *args],
                cwd=Path.cwd(),
                timeout=DOCKER_TIMEOUT,
            )
        )


class WarmContainerHandle:
    """Exclusive use of a warm container until released."""

    def __init__(self, container: WarmContainer, holder: Optional[str]) -> None:
        self.container = container
        self.holder = holder
        self._released = False

    @property
    def base_url(self) -> str:
        return self.container.base_url

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Give the container back.

        Raises:
            ContainerError: If the handle was already released.
        """
        if self._released:
            raise ContainerError(f"Container {self.container.name} released twice")
        self._released = True
        self.container._release(self.holder)

    def __enter__(self) -> "WarmContainerHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._released:
            self.release()
