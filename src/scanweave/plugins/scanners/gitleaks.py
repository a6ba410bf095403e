"""Gitleaks scanner plugin for secret detection."""

from __future__ import annotations

from typing import FrozenSet, List

from scanweave.core.models import ExecutionResult, InputKind, ScanContext
from scanweave.plugins.scanners.base import SarifScannerPlugin


class GitleaksScanner(SarifScannerPlugin):
    """Runs ``gitleaks detect`` over the working tree with SARIF output."""

    executable = "gitleaks"
    version_args = ["version"]
    success_exit_codes = frozenset({0, 1})

    @property
    def name(self) -> str:
        return "gitleaks"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.SECRETS})

    def build_args(self, context: ScanContext) -> List[str]:
        return [
            "detect",
            "--source", str(context.target_path),
            "--report-format", "sarif",
            "--report-path", str(context.artifact_path(self.name, ".sarif")),
            "--no-banner",
            "--no-git",
            "--exit-code", "0",
        ]

    def scan(self, context: ScanContext) -> ExecutionResult:
        return self.invoke(
            context,
            self.build_args(context),
            artifact_path=context.artifact_path(self.name, ".sarif"),
        )
