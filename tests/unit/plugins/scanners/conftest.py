"""Shared fixtures for scanner adapter tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from scanweave.core.models import ExecutionResult, ScanContext
from scanweave.core.subprocess_runner import ToolInvocation

Writer = Callable[[ToolInvocation], None]


class RecordingRunner:
    """Stands in for ProcessRunner: records invocations, optionally writes artifacts."""

    def __init__(self) -> None:
        self.invocations: List[ToolInvocation] = []
        self.exit_codes: List[int] = []
        self.stdout = ""
        self.writer: Optional[Writer] = None
        self.available = True
        self.version: Optional[str] = "1.0.0"

    def run(self, invocation: ToolInvocation) -> ExecutionResult:
        self.invocations.append(invocation)
        if self.writer is not None:
            self.writer(invocation)
        code = self.exit_codes.pop(0) if self.exit_codes else 0
        return ExecutionResult(
            tool_name=invocation.tool_name,
            exit_code=code,
            stdout=self.stdout,
            artifact_path=invocation.artifact_path,
        )

    def writes(self, document: Any) -> None:
        """Dump ``document`` as JSON to every invocation's artifact path."""

        def writer(invocation: ToolInvocation) -> None:
            assert invocation.artifact_path is not None
            invocation.artifact_path.parent.mkdir(parents=True, exist_ok=True)
            invocation.artifact_path.write_text(json.dumps(document), encoding="utf-8")

        self.writer = writer

    def is_command_available(self, command: str) -> bool:
        return self.available

    def get_command_version(self, argv: List[str], timeout: Optional[float] = None) -> Optional[str]:
        return self.version

    @property
    def argv(self) -> List[str]:
        return self.invocations[-1].argv


def _sarif_document(
    results: List[Dict[str, Any]],
    rules: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return {
        "version": "2.1.0",
        "runs": [{"tool": {"driver": {"name": "tool", "rules": rules or []}}, "results": results}],
    }


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def make_sarif() -> Callable[..., Dict[str, Any]]:
    """Build a one-run SARIF document from results and optional rules."""
    return _sarif_document


@pytest.fixture
def context(tmp_path: Path) -> ScanContext:
    target = tmp_path / "project"
    target.mkdir()
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    return ScanContext(scan_id="scan-1", target_path=target, work_dir=work_dir, timeout=120)
