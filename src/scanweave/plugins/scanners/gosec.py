"""Gosec scanner plugin for Go static analysis."""

from __future__ import annotations

from typing import FrozenSet, List, Optional

from scanweave.core.models import ExecutionResult, InputKind, ScanContext
from scanweave.core.paths import exclude_args
from scanweave.plugins.scanners.base import SarifScannerPlugin


class GosecScanner(SarifScannerPlugin):
    """Runs gosec over every Go package of the target.

    Exit code 1 means issues were found.
    """

    executable = "gosec"
    version_args = ["-version"]
    success_exit_codes = frozenset({0, 1})

    @property
    def name(self) -> str:
        return "gosec"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.SOURCE})

    def applies_to(self, context: ScanContext) -> Optional[str]:
        if context.languages and "go" not in context.languages:
            return "no Go sources"
        return None

    def build_args(self, context: ScanContext) -> List[str]:
        output = context.artifact_path(self.name, ".sarif")
        args = ["-fmt=sarif", f"-out={output}", "-quiet"]
        for path in exclude_args(context.exclude_paths):
            args.append(f"-exclude-dir={path}")
        args.append("./...")
        return args

    def scan(self, context: ScanContext) -> ExecutionResult:
        return self.invoke(
            context,
            self.build_args(context),
            artifact_path=context.artifact_path(self.name, ".sarif"),
        )
