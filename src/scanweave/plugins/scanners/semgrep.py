"""Semgrep scanner plugin for static analysis (SAST)."""

from __future__ import annotations

from typing import FrozenSet, List

from scanweave.core.logging import get_logger
from scanweave.core.models import ExecutionResult, InputKind, ScanContext
from scanweave.core.paths import as_list, exclude_args
from scanweave.plugins.scanners.base import SarifScannerPlugin

LOGGER = get_logger(__name__)

DEFAULT_RULESETS = ["auto", "p/security-audit", "p/owasp-top-ten"]
MAX_MEMORY_MB = 4096
JOBS = 4


class SemgrepScanner(SarifScannerPlugin):
    """Runs ``semgrep scan`` with SARIF output.

    Exit code 1 means findings were reported.
    """

    executable = "semgrep"
    success_exit_codes = frozenset({0, 1})

    @property
    def name(self) -> str:
        return "semgrep"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.SOURCE})

    def build_args(self, context: ScanContext) -> List[str]:
        output = context.artifact_path(self.name, ".sarif")
        rulesets = as_list(context.tool_options(self.name).get("rulesets")) or DEFAULT_RULESETS

        args = ["scan"]
        for ruleset in rulesets:
            args.extend(["--config", ruleset])
        args.extend([
            "--sarif",
            "--output", str(output),
            "--timeout", str(context.timeout),
            "--max-memory", str(MAX_MEMORY_MB),
            "--jobs", str(JOBS),
            "--quiet",
            "--no-git-ignore",
        ])
        for path in exclude_args(context.exclude_paths):
            args.extend(["--exclude", path])
        args.append(str(context.target_path))
        return args

    def scan(self, context: ScanContext) -> ExecutionResult:
        LOGGER.info(f"Running semgrep on {context.target_path}")
        return self.invoke(
            context,
            self.build_args(context),
            artifact_path=context.artifact_path(self.name, ".sarif"),
            env={"SEMGREP_SEND_METRICS": "off"},
        )
