"""Checkov scanner plugin for IaC (Infrastructure as Code) scanning."""

from __future__ import annotations

from pathlib import Path
from typing import FrozenSet, List

from scanweave.core.models import ExecutionResult, InputKind, ScanContext
from scanweave.core.paths import as_list, exclude_args
from scanweave.plugins.scanners.base import SarifScannerPlugin

# Checkov names its SARIF file itself inside --output-file-path.
CHECKOV_SARIF_NAME = "results_sarif.sarif"

# Context flags that narrow the framework list.
FRAMEWORK_FLAGS = {
    "has_terraform": "terraform",
    "has_dockerfile": "dockerfile",
    "has_kubernetes": "kubernetes",
    "has_cloudformation": "cloudformation",
}


class CheckovScanner(SarifScannerPlugin):
    """Runs checkov in soft-fail mode with SARIF output."""

    executable = "checkov"
    success_exit_codes = frozenset({0, 1})

    @property
    def name(self) -> str:
        return "checkov"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.INFRASTRUCTURE})

    def output_dir(self, context: ScanContext) -> Path:
        return context.work_dir / self.name

    def frameworks(self, context: ScanContext) -> List[str]:
        configured = as_list(context.tool_options(self.name).get("frameworks"))
        if configured:
            return configured
        return [fw for flag, fw in FRAMEWORK_FLAGS.items() if context.config.get(flag)]

    def build_args(self, context: ScanContext) -> List[str]:
        args = [
            "-d", str(context.target_path),
            "--output", "sarif",
            "--output-file-path", str(self.output_dir(context)),
            "--soft-fail",
            "--compact",
            "--quiet",
        ]
        frameworks = self.frameworks(context)
        if frameworks:
            args.extend(["--framework", ",".join(frameworks)])
        for path in exclude_args(context.exclude_paths):
            args.extend(["--skip-path", path])
        return args

    def scan(self, context: ScanContext) -> ExecutionResult:
        output_dir = self.output_dir(context)
        output_dir.mkdir(parents=True, exist_ok=True)
        return self.invoke(
            context,
            self.build_args(context),
            artifact_path=output_dir / CHECKOV_SARIF_NAME,
            env={"LOG_LEVEL": "WARNING"},
        )
