from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import (
    ExecutionResult,
    InputKind,
    NormalizedFinding,
    OutputFormat,
    ScanContext,
    ToolStatus,
)
from scanweave.core.subprocess_runner import ProcessRunner, ToolInvocation
from scanweave.normalizer.sarif import parse_sarif_file

LOGGER = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT = 10


class ScannerPlugin(ABC):
    """Base class for all scanner adapters.

    Each adapter wraps one external security tool and exposes it through
    the only contract the orchestrator depends on: identity, supported
    inputs, availability, execution and output parsing. Adapters declare
    which exit codes count as success, since conventions differ per tool.
    """

    #: Executable the adapter runs; used for availability and version checks.
    executable: str = ""
    #: Arguments appended to ``executable`` for the version check.
    version_args: List[str] = ["--version"]
    #: Exit codes that do not indicate a tool error.
    success_exit_codes: FrozenSet[int] = frozenset({0})
    #: Crawlers that only feed URLs to the other tools run before them.
    discovers_targets: bool = False

    def __init__(self, runner: Optional[ProcessRunner] = None) -> None:
        self._runner = runner or ProcessRunner()

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter identifier (e.g., 'trivy', 'semgrep')."""

    @property
    @abstractmethod
    def input_kinds(self) -> FrozenSet[InputKind]:
        """Kinds of input this tool can scan."""

    @property
    @abstractmethod
    def output_format(self) -> OutputFormat:
        """Native wire format of the tool's results."""

    @property
    def runner(self) -> ProcessRunner:
        return self._runner

    @property
    def version_command(self) -> List[str]:
        return [self.executable, *self.version_args]

    def is_available(self) -> bool:
        """Cheap, side-effect-free check that the tool can be launched."""
        return self._runner.is_command_available(self.executable)

    def get_version(self) -> str:
        """Return the version of the underlying tool, or 'unknown'."""
        return self._runner.get_command_version(self.version_command) or "unknown"

    def probe(self, timeout: float = DEFAULT_PROBE_TIMEOUT) -> ToolStatus:
        """Run the lightweight version check and report availability."""
        if not self.is_available():
            return ToolStatus(name=self.name, available=False, error=f"{self.executable} not found")
        version = self._runner.get_command_version(self.version_command, timeout=timeout)
        if version is None:
            return ToolStatus(name=self.name, available=False, error="version check failed")
        return ToolStatus(name=self.name, available=True, version=version)

    def applies_to(self, context: ScanContext) -> Optional[str]:
        """Return a reason to skip this tool for ``context``, or None to run it."""
        return None

    @abstractmethod
    def scan(self, context: ScanContext) -> ExecutionResult:
        """Execute the tool and return the raw execution result.

        Args:
            context: Scan context with the target, work dir and options.

        Returns:
            ExecutionResult, with ``error`` set from ``success_exit_codes``.
        """

    @abstractmethod
    def parse_output(self, result: ExecutionResult, context: ScanContext) -> List[NormalizedFinding]:
        """Convert the tool's native output into normalized findings.

        Malformed or missing artifacts yield an empty list.
        """

    def discovered_targets(self, result: ExecutionResult, context: ScanContext) -> List[str]:
        """URLs a discovery run found, to be scanned by the other tools."""
        return []

    def invoke(
        self,
        context: ScanContext,
        args: List[str],
        artifact_path: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
    ) -> ExecutionResult:
        """Run the tool once for ``context`` and classify the exit code."""
        invocation = ToolInvocation(
            tool_name=self.name,
            argv=[self.executable, *args],
            cwd=cwd or context.target_path,
            env=env or {},
            timeout=timeout if timeout is not None else context.timeout,
            artifact_path=artifact_path,
            scan_id=context.scan_id,
            stream_handler=context.stream_handler,
        )
        return self._runner.run(invocation).classified(self.success_exit_codes)


class SarifScannerPlugin(ScannerPlugin):
    """Adapter whose tool writes a SARIF artifact."""

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.SARIF

    def parse_output(self, result: ExecutionResult, context: ScanContext) -> List[NormalizedFinding]:
        return parse_sarif_file(result.artifact_path, self.name, context.target_path)
