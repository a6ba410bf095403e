"""Nuclei scanner plugin for live endpoint (DAST) scanning.

Runs in two phases by default: a cheap discovery pass whose findings
select technology-focused templates for a deep pass.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import (
    Confidence,
    ExecutionResult,
    InputKind,
    NormalizedFinding,
    OutputFormat,
    ScanContext,
)
from scanweave.core.paths import as_list
from scanweave.normalizer.fingerprint import compute_fingerprint
from scanweave.normalizer.jsonl import iter_json_lines, read_json_lines_file
from scanweave.normalizer.severity import normalize_severity
from scanweave.plugins.scanners.base import ScannerPlugin
from scanweave.strategies.phased import (
    PhasedStrategy,
    PhasePlan,
    normalize_target_url,
)

LOGGER = get_logger(__name__)

RATE_LIMIT_PRESETS: Dict[str, Dict[str, int]] = {
    "low": {"rate_limit": 50, "bulk_size": 25, "concurrency": 25},
    "medium": {"rate_limit": 150, "bulk_size": 50, "concurrency": 50},
    "high": {"rate_limit": 300, "bulk_size": 100, "concurrency": 100},
}
DEFAULT_RATE_LIMIT = "medium"

SCAN_MODE_TEMPLATES: Dict[str, List[str]] = {
    "quick": ["http/technologies", "http/exposed-panels"],
    "standard": [
        "http/technologies",
        "http/exposed-panels",
        "http/exposures",
        "http/misconfiguration",
    ],
    "full": [
        "http/technologies",
        "http/exposed-panels",
        "http/exposures",
        "http/misconfiguration",
        "http/cves",
        "http/vulnerabilities",
    ],
}
DEFAULT_SCAN_MODE = "standard"
FULL_MODE_SEVERITIES = ["critical", "high", "medium"]
SINGLE_PASS_REQUEST_TIMEOUT = 10


def rate_limit_settings(preset: Optional[str]) -> Dict[str, int]:
    """Resolve a rate-limit preset name, falling back to medium."""
    key = (preset or DEFAULT_RATE_LIMIT).lower()
    if key not in RATE_LIMIT_PRESETS:
        LOGGER.warning(f"Unknown rate limit preset '{preset}', using {DEFAULT_RATE_LIMIT}")
        key = DEFAULT_RATE_LIMIT
    return RATE_LIMIT_PRESETS[key]


class NucleiScanner(ScannerPlugin):
    """Runs nuclei against the target URLs of a scan."""

    executable = "nuclei"
    success_exit_codes = frozenset({0, 1})

    @property
    def name(self) -> str:
        return "nuclei"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.URL})

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.JSONL

    def target_urls(self, context: ScanContext) -> List[str]:
        return [normalize_target_url(u) for u in as_list(context.config.get("target_urls"))]

    def applies_to(self, context: ScanContext) -> Optional[str]:
        if not self.target_urls(context):
            return "no target URLs configured"
        return None

    def targets_file(self, context: ScanContext) -> Path:
        return context.artifact_path(self.name, "-targets.txt")

    def build_phase_args(self, context: ScanContext, plan: PhasePlan, artifact: Path) -> List[str]:
        """Argument vector for one nuclei pass."""
        options = context.tool_options(self.name)
        limits = rate_limit_settings(options.get("rate_limit") or context.config.get("rate_limit"))
        args = [
            "-l", str(self.targets_file(context)),
            "-jsonl-export", str(artifact),
            "-silent",
            "-no-color",
            "-rate-limit", str(limits["rate_limit"]),
            "-bulk-size", str(limits["bulk_size"]),
            "-concurrency", str(limits["concurrency"]),
            "-timeout", str(plan.request_timeout),
        ]
        templates_path = options.get("templates_path")
        templates = [templates_path] if templates_path else plan.templates
        for template in templates:
            args.extend(["-t", str(template)])
        if plan.severities:
            args.extend(["-s", ",".join(plan.severities)])
        return args

    def scan(self, context: ScanContext) -> ExecutionResult:
        targets = self.target_urls(context)
        self.targets_file(context).write_text("\n".join(targets) + "\n", encoding="utf-8")
        LOGGER.info(f"nuclei targets: {', '.join(targets)}")

        artifact = context.artifact_path(self.name, ".jsonl")
        options = context.tool_options(self.name)
        if options.get("phased", True):
            outcome = PhasedStrategy(self, self.build_phase_args).run(context, artifact)
            return outcome.result

        mode = str(options.get("scan_mode") or context.config.get("scan_mode") or DEFAULT_SCAN_MODE)
        templates = SCAN_MODE_TEMPLATES.get(mode, SCAN_MODE_TEMPLATES[DEFAULT_SCAN_MODE])
        plan = PhasePlan(
            "single",
            templates,
            FULL_MODE_SEVERITIES if mode == "full" else None,
            SINGLE_PASS_REQUEST_TIMEOUT,
        )
        return self.invoke(context, self.build_phase_args(context, plan, artifact), artifact_path=artifact)

    def parse_output(self, result: ExecutionResult, context: ScanContext) -> List[NormalizedFinding]:
        text = read_json_lines_file(result.artifact_path)
        if not text:
            return []

        stripped = text.lstrip()
        if stripped.startswith("["):
            # -json-export writes a JSON array instead of lines.
            try:
                records = [r for r in json.loads(stripped) if isinstance(r, dict)]
            except json.JSONDecodeError as e:
                LOGGER.warning(f"Failed to parse nuclei output: {e}")
                return []
        else:
            records = list(iter_json_lines(text, source=self.name))

        findings: List[NormalizedFinding] = []
        for record in records:
            finding = self._convert(record)
            if finding is not None:
                findings.append(finding)
        return findings

    def _convert(self, record: Dict[str, Any]) -> Optional[NormalizedFinding]:
        template_id = record.get("template-id")
        if not template_id:
            return None
        info = record.get("info") or {}
        classification = info.get("classification") or {}
        tags = as_list(info.get("tags"))
        matched = record.get("matched-at") or record.get("matched") or record.get("host") or ""
        matcher = record.get("matcher-name") or ""

        return NormalizedFinding(
            source_tool=self.name,
            rule_id=template_id,
            severity=normalize_severity(info.get("severity")),
            confidence=(
                Confidence.HIGH if any(t.lower().startswith("cve-") for t in tags) else Confidence.MEDIUM
            ),
            title=info.get("name") or template_id,
            description=info.get("description") or f"Detected by template: {template_id}",
            file_path=matched,
            start_line=0,
            weakness_ids=[c.upper() for c in as_list(classification.get("cwe-id"))],
            vulnerability_ids=[c.upper() for c in as_list(classification.get("cve-id"))],
            references=as_list(info.get("reference")),
            fingerprint=compute_fingerprint(self.name, template_id, matched, matcher),
            metadata={
                "tags": tags,
                "host": record.get("host"),
                "matcher_name": matcher or None,
                "extracted": record.get("extracted-results") or record.get("extracted") or [],
                "type": record.get("type"),
            },
        )
