from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from scanweave.core.cancellation import CancellationToken
from scanweave.core.exceptions import InvalidStateTransition
from scanweave.core.streaming import NullStreamHandler, StreamHandler


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class InputKind(str, Enum):
    """Kinds of scan input a tool adapter can consume."""

    SOURCE = "source"
    DEPENDENCIES = "dependencies"
    CONTAINER_IMAGE = "container_image"
    INFRASTRUCTURE = "infrastructure"
    SECRETS = "secrets"
    URL = "url"


class OutputFormat(str, Enum):
    """Native wire format a tool produces."""

    SARIF = "sarif"
    JSONL = "jsonl"
    JSON = "json"
    API = "api"


class Severity(str, Enum):
    """Unified severity levels used across all scanners."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Numeric rank, higher is more severe."""
        return SEVERITY_RANK[self]


SEVERITY_RANK: Dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


class Confidence(str, Enum):
    """How likely a finding is a true positive, as reported by the tool."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScanStatus(str, Enum):
    """Lifecycle states of a scan."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ScanStatus.COMPLETED, ScanStatus.FAILED, ScanStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[ScanStatus, FrozenSet[ScanStatus]] = {
    ScanStatus.QUEUED: frozenset({ScanStatus.RUNNING, ScanStatus.CANCELLED}),
    ScanStatus.RUNNING: frozenset(
        {ScanStatus.COMPLETED, ScanStatus.FAILED, ScanStatus.CANCELLED}
    ),
    ScanStatus.COMPLETED: frozenset(),
    ScanStatus.FAILED: frozenset(),
    ScanStatus.CANCELLED: frozenset(),
}


class ToolRunStatus(str, Enum):
    """Outcome of one tool within a scan."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class ToolStatus:
    """Availability snapshot for one tool.

    Refreshed only by explicit probe calls; callers decide when it is stale.
    """

    name: str
    available: bool
    version: Optional[str] = None
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "available": self.available,
            "version": self.version,
            "error": self.error,
            "checked_at": _iso(self.checked_at),
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a single subprocess or container invocation.

    Attributes:
        tool_name: Adapter that produced the result.
        exit_code: Process exit code (-1 when the process never reported one).
        stdout: Captured standard output, possibly truncated.
        stderr: Captured standard error, possibly truncated.
        artifact_path: Result file written by the tool, if any.
        duration_ms: Wall-clock duration of the invocation.
        timed_out: True when the invocation was terminated on timeout.
        error: True when the exit code falls outside the tool's success set.
    """

    tool_name: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    artifact_path: Optional[Path] = None
    duration_ms: int = 0
    timed_out: bool = False
    error: bool = False

    def classified(self, success_exit_codes: Iterable[int]) -> "ExecutionResult":
        """Return a copy with ``error`` set from the given success set."""
        return replace(self, error=self.exit_code not in frozenset(success_exit_codes))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "artifact_path": str(self.artifact_path) if self.artifact_path else None,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionResult":
        artifact = data.get("artifact_path")
        return cls(
            tool_name=data["tool_name"],
            exit_code=data.get("exit_code", -1),
            stdout=data.get("stdout", ""),
            stderr=data.get("stderr", ""),
            artifact_path=Path(artifact) if artifact else None,
            duration_ms=data.get("duration_ms", 0),
            timed_out=data.get("timed_out", False),
            error=data.get("error", False),
        )


@dataclass
class NormalizedFinding:
    """A single finding in the common schema shared by all tools."""

    source_tool: str
    rule_id: str
    severity: Severity
    title: str
    fingerprint: str
    confidence: Confidence = Confidence.MEDIUM
    description: str = ""
    file_path: str = ""
    start_line: int = 0
    end_line: Optional[int] = None
    start_column: Optional[int] = None
    end_column: Optional[int] = None
    snippet: Optional[str] = None
    weakness_ids: List[str] = field(default_factory=list)
    vulnerability_ids: List[str] = field(default_factory=list)
    references: List[str] = field(default_factory=list)
    fix: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def line_span(self) -> range:
        """Inclusive span of lines the finding covers."""
        end = self.end_line if self.end_line is not None and self.end_line >= self.start_line else self.start_line
        return range(self.start_line, end + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_tool": self.source_tool,
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "confidence": self.confidence.value,
            "title": self.title,
            "description": self.description,
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "start_column": self.start_column,
            "end_column": self.end_column,
            "snippet": self.snippet,
            "weakness_ids": list(self.weakness_ids),
            "vulnerability_ids": list(self.vulnerability_ids),
            "references": list(self.references),
            "fix": self.fix,
            "fingerprint": self.fingerprint,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedFinding":
        return cls(
            source_tool=data["source_tool"],
            rule_id=data["rule_id"],
            severity=Severity(data["severity"]),
            confidence=Confidence(data.get("confidence", Confidence.MEDIUM.value)),
            title=data.get("title", ""),
            description=data.get("description", ""),
            file_path=data.get("file_path", ""),
            start_line=data.get("start_line", 0),
            end_line=data.get("end_line"),
            start_column=data.get("start_column"),
            end_column=data.get("end_column"),
            snippet=data.get("snippet"),
            weakness_ids=list(data.get("weakness_ids", [])),
            vulnerability_ids=list(data.get("vulnerability_ids", [])),
            references=list(data.get("references", [])),
            fix=data.get("fix"),
            fingerprint=data["fingerprint"],
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class ScanContext:
    """Everything an adapter needs to run one tool for one scan.

    Attributes:
        scan_id: Identifier of the owning scan.
        target_path: Directory being scanned.
        work_dir: Exclusive per-scan working directory for artifacts.
        exclude_paths: Paths or patterns the tool should skip.
        timeout: Wall-clock budget per invocation, in seconds.
        config: Free-form options (container images, target URLs, ...).
        languages: Detected or requested languages of the target.
        cancel_token: Cooperative cancellation flag for the scan.
        stream_handler: Progress channel for this scan.
    """

    scan_id: str
    target_path: Path
    work_dir: Path
    exclude_paths: List[str] = field(default_factory=list)
    timeout: int = 600
    config: Dict[str, Any] = field(default_factory=dict)
    languages: List[str] = field(default_factory=list)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    stream_handler: StreamHandler = field(default_factory=NullStreamHandler)

    def artifact_path(self, tool_name: str, suffix: str) -> Path:
        """Return the artifact path for a tool inside the work dir."""
        return self.work_dir / f"{tool_name}{suffix}"

    def tool_options(self, tool_name: str) -> Dict[str, Any]:
        """Return per-tool options from ``config['tools'][tool_name]``."""
        tools = self.config.get("tools", {})
        options = tools.get(tool_name, {}) if isinstance(tools, dict) else {}
        return options if isinstance(options, dict) else {}


@dataclass
class ScanRequest:
    """A request to scan one target with a set of tools."""

    id: str
    target_path: Path
    requested_tools: List[str]
    exclude_paths: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)
    diff_text: Optional[str] = None
    comparison_key: Optional[str] = None
    previous_findings: List[Any] = field(default_factory=list)


@dataclass
class ToolRunRecord:
    """Per-tool outcome recorded on a scan result."""

    tool_name: str
    status: ToolRunStatus
    execution: Optional[ExecutionResult] = None
    finding_count: int = 0
    error: Optional[str] = None
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "status": self.status.value,
            "execution": self.execution.to_dict() if self.execution else None,
            "finding_count": self.finding_count,
            "error": self.error,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolRunRecord":
        execution = data.get("execution")
        return cls(
            tool_name=data["tool_name"],
            status=ToolRunStatus(data["status"]),
            execution=ExecutionResult.from_dict(execution) if execution else None,
            finding_count=data.get("finding_count", 0),
            error=data.get("error"),
            version=data.get("version"),
        )


@dataclass
class ScanResult:
    """Aggregated, orchestrator-owned state of one scan."""

    scan_id: str
    requested_tools: List[str] = field(default_factory=list)
    status: ScanStatus = ScanStatus.QUEUED
    tool_results: Dict[str, ToolRunRecord] = field(default_factory=dict)
    findings: List[NormalizedFinding] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    lifecycle: Dict[str, List[str]] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def transition(self, target: ScanStatus) -> None:
        """Move to ``target``, enforcing the scan state machine.

        Raises:
            InvalidStateTransition: If the move is not allowed.
        """
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateTransition(self.scan_id, self.status.value, target.value)
        self.status = target
        if target == ScanStatus.RUNNING:
            self.started_at = utcnow()
        elif target.is_terminal:
            self.completed_at = utcnow()
            if self.started_at is not None:
                delta = self.completed_at - self.started_at
                self.duration_ms = int(delta.total_seconds() * 1000)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "requested_tools": list(self.requested_tools),
            "status": self.status.value,
            "tool_results": {k: v.to_dict() for k, v in self.tool_results.items()},
            "findings": [f.to_dict() for f in self.findings],
            "skipped": dict(self.skipped),
            "lifecycle": {k: list(v) for k, v in self.lifecycle.items()},
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "duration_ms": self.duration_ms,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanResult":
        return cls(
            scan_id=data["scan_id"],
            requested_tools=list(data.get("requested_tools", [])),
            status=ScanStatus(data.get("status", ScanStatus.QUEUED.value)),
            tool_results={
                k: ToolRunRecord.from_dict(v) for k, v in data.get("tool_results", {}).items()
            },
            findings=[NormalizedFinding.from_dict(f) for f in data.get("findings", [])],
            skipped=dict(data.get("skipped", {})),
            lifecycle={k: list(v) for k, v in data.get("lifecycle", {}).items()},
            started_at=_parse_iso(data.get("started_at")),
            completed_at=_parse_iso(data.get("completed_at")),
            duration_ms=data.get("duration_ms", 0),
            error=data.get("error"),
        )
