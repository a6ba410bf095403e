"""TruffleHog scanner plugin for secret detection.

TruffleHog writes one JSON object per detected secret to stdout.
"""

from __future__ import annotations

import re
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
    Severity,
)
from scanweave.core.paths import exclude_args, normalize_path
from scanweave.normalizer.fingerprint import compute_fingerprint
from scanweave.normalizer.jsonl import iter_json_lines
from scanweave.plugins.scanners.base import ScannerPlugin

LOGGER = get_logger(__name__)

HARDCODED_CREDENTIALS_CWE = "CWE-798"
OWASP_AUTH_FAILURES = "A07:2021"
REFERENCES = [
    "https://owasp.org/Top10/A07_2021-Identification_and_Authentication_Failures/",
    "https://cwe.mitre.org/data/definitions/798.html",
]
CONCURRENCY = 5


def rule_id_for(detector: str) -> str:
    """Build the rule id for a detector name, e.g. ``trufflehog-aws``."""
    return "trufflehog-" + re.sub(r"\s+", "-", detector.strip().lower())


class TrufflehogScanner(ScannerPlugin):
    """Runs ``trufflehog filesystem`` and parses its JSONL stdout."""

    executable = "trufflehog"
    success_exit_codes = frozenset({0, 183})

    @property
    def name(self) -> str:
        return "trufflehog"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.SECRETS})

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.JSONL

    def write_exclude_file(self, context: ScanContext) -> Optional[Path]:
        """Write exclusion regexes to a file, as --exclude-paths expects."""
        paths = exclude_args(context.exclude_paths)
        if not paths:
            return None
        exclude_file = context.artifact_path(self.name, "-exclude.txt")
        exclude_file.write_text(
            "\n".join(re.escape(path) for path in paths) + "\n", encoding="utf-8"
        )
        return exclude_file

    def build_args(self, context: ScanContext, exclude_file: Optional[Path]) -> List[str]:
        args = [
            "filesystem",
            str(context.target_path),
            "--json",
            "--no-update",
            "--concurrency", str(CONCURRENCY),
        ]
        if exclude_file is not None:
            args.extend(["--exclude-paths", str(exclude_file)])
        return args

    def scan(self, context: ScanContext) -> ExecutionResult:
        exclude_file = self.write_exclude_file(context)
        return self.invoke(context, self.build_args(context, exclude_file))

    def parse_output(self, result: ExecutionResult, context: ScanContext) -> List[NormalizedFinding]:
        findings: List[NormalizedFinding] = []
        for record in iter_json_lines(result.stdout, source=self.name):
            finding = self._convert(record, context)
            if finding is not None:
                findings.append(finding)
        LOGGER.debug(f"Parsed {len(findings)} trufflehog finding(s)")
        return findings

    def _convert(self, record: Dict[str, Any], context: ScanContext) -> Optional[NormalizedFinding]:
        detector = record.get("DetectorName")
        if not detector:
            return None
        filesystem = ((record.get("SourceMetadata") or {}).get("Data") or {}).get("Filesystem") or {}
        file_path = normalize_path(filesystem.get("file") or "", context.target_path) or "unknown"
        line = int(filesystem.get("line") or 0)
        verified = bool(record.get("Verified"))
        rule_id = rule_id_for(detector)

        description = f"Detected a {detector} secret in the codebase."
        if verified:
            description += " The secret was verified as active and should be rotated."
        else:
            description += " The secret has not been verified."

        return NormalizedFinding(
            source_tool=self.name,
            rule_id=rule_id,
            severity=Severity.CRITICAL if verified else Severity.HIGH,
            confidence=Confidence.HIGH if verified else Confidence.MEDIUM,
            title=f"{'Verified ' if verified else ''}{detector} Secret Detected",
            description=description,
            file_path=file_path,
            start_line=line,
            weakness_ids=[HARDCODED_CREDENTIALS_CWE],
            references=list(REFERENCES),
            fingerprint=compute_fingerprint(self.name, rule_id, file_path, line),
            metadata={
                "detector": detector,
                "verified": verified,
                "redacted": record.get("Redacted"),
                "decoder": record.get("DecoderName"),
                "owasp": [OWASP_AUTH_FAILURES],
            },
        )
