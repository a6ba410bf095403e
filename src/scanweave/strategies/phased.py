"""Phased strategy: discovery pass, then a deep pass focused on what it found.

Phase 1 runs a broad, cheap template set. Its findings are mined for a
small vocabulary of technologies, which selects focused templates from a
static table for phase 2. Phase 2 always includes the baseline set and
runs with a tighter severity filter and request timeout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlsplit, urlunsplit

from scanweave.core.exceptions import ScanCancelledError
from scanweave.core.logging import get_logger
from scanweave.core.models import ExecutionResult, NormalizedFinding, ScanContext
from scanweave.core.streaming import ProgressEvent, ProgressEventType
from scanweave.strategies.merge import reduce_exit_codes

if TYPE_CHECKING:
    from scanweave.plugins.scanners.base import ScannerPlugin

LOGGER = get_logger(__name__)

DISCOVERY_TEMPLATES: Tuple[str, ...] = (
    "http/technologies",
    "http/exposed-panels",
    "http/misconfiguration",
)

BASELINE_TEMPLATES: Tuple[str, ...] = (
    "http/cves",
    "http/vulnerabilities",
)

TECH_TEMPLATE_TABLE: Dict[str, Tuple[str, ...]] = {
    "apache": ("http/apache", "http/cves/apache"),
    "nginx": ("http/nginx",),
    "wordpress": ("http/wordpress",),
    "tomcat": ("http/tomcat",),
    "iis": ("http/iis",),
    "php": ("http/php",),
    "nodejs": ("http/nodejs", "http/node"),
    "spring": ("http/spring",),
    "joomla": ("http/joomla",),
    "drupal": ("http/drupal",),
    "jenkins": ("http/jenkins",),
    "gitlab": ("http/gitlab",),
    "grafana": ("http/grafana",),
    "kubernetes": ("http/kubernetes",),
    "docker": ("http/docker",),
}

# Extra spellings that identify a table technology.
TECH_ALIASES: Dict[str, str] = {
    "node.js": "nodejs",
    "node-js": "nodejs",
    "express": "nodejs",
    "k8s": "kubernetes",
}

DEEP_SEVERITIES: Tuple[str, ...] = ("critical", "high", "medium")

# Strings longer than this in extracted values are page content, not banners.
MAX_SIGNAL_LENGTH = 50

LOOPBACK_ALIASES = {"localhost"}
LOOPBACK_ADDRESS = "127.0.0.1"


@dataclass
class PhasePlan:
    """Inputs of one phase."""

    label: str
    templates: List[str]
    severities: Optional[List[str]] = None
    request_timeout: int = 10


@dataclass
class PhasedOutcome:
    """What the phased run learned, alongside its merged result."""

    result: ExecutionResult
    technologies: Set[str] = field(default_factory=set)
    phases: List[PhasePlan] = field(default_factory=list)


def _signals(finding: NormalizedFinding) -> List[str]:
    values = [finding.rule_id, finding.title]
    values.extend(t for t in finding.metadata.get("tags") or [] if isinstance(t, str))
    values.extend(
        e for e in finding.metadata.get("extracted") or []
        if isinstance(e, str) and len(e) < MAX_SIGNAL_LENGTH
    )
    return [v.lower() for v in values if v]


def detect_technologies(findings: Iterable[NormalizedFinding]) -> Set[str]:
    """Derive the technology set from discovery findings.

    Matches table keys and aliases as substrings of rule ids, titles,
    tags and short extracted values. Independent of which tool reported
    the findings.
    """
    detected: Set[str] = set()
    for finding in findings:
        for signal in _signals(finding):
            for tech in TECH_TEMPLATE_TABLE:
                if tech in signal:
                    detected.add(tech)
            for alias, tech in TECH_ALIASES.items():
                if alias in signal:
                    detected.add(tech)
    return detected


def select_deep_templates(technologies: Iterable[str]) -> List[str]:
    """Union of the focused templates for each technology plus the baseline.

    Unknown technologies contribute nothing.
    """
    templates: Set[str] = set(BASELINE_TEMPLATES)
    for tech in technologies:
        templates.update(TECH_TEMPLATE_TABLE.get(tech.strip().lower(), ()))
    return sorted(templates)


def normalize_target_url(url: str) -> str:
    """Replace loop-back host aliases with ``127.0.0.1``.

    Only the host part changes; scheme, port, path and query are kept.
    """
    value = url.strip()
    if "://" not in value:
        host, sep, rest = value.partition("/")
        name, colon, port = host.partition(":")
        if name.lower() in LOOPBACK_ALIASES:
            return f"{LOOPBACK_ADDRESS}{colon}{port}{sep}{rest}"
        return value

    parts = urlsplit(value)
    if (parts.hostname or "").lower() not in LOOPBACK_ALIASES:
        return value
    netloc = LOOPBACK_ADDRESS
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    userinfo, at, _ = parts.netloc.rpartition("@")
    if at:
        netloc = f"{userinfo}@{netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


ArgsBuilder = Callable[[ScanContext, PhasePlan, Path], List[str]]


class PhasedStrategy:
    """Runs discovery then deep phases of one tool, strictly in order.

    Args:
        plugin: Adapter used to invoke and parse each phase.
        build_args: Builds the argument vector for a phase and artifact.
        discovery_timeout: Per-request timeout of the discovery phase.
        deep_timeout: Per-request timeout of the deep phase.
    """

    def __init__(
        self,
        plugin: "ScannerPlugin",
        build_args: ArgsBuilder,
        discovery_timeout: int = 10,
        deep_timeout: int = 5,
    ) -> None:
        self._plugin = plugin
        self._build_args = build_args
        self._discovery_timeout = discovery_timeout
        self._deep_timeout = deep_timeout

    def discovery_plan(self) -> PhasePlan:
        return PhasePlan("discovery", list(DISCOVERY_TEMPLATES), None, self._discovery_timeout)

    def deep_plan(self, technologies: Iterable[str]) -> PhasePlan:
        return PhasePlan(
            "deep",
            select_deep_templates(technologies),
            list(DEEP_SEVERITIES),
            self._deep_timeout,
        )

    def run(self, context: ScanContext, artifact_path: Path) -> PhasedOutcome:
        """Execute both phases and combine their JSONL artifacts.

        Raises:
            ScanCancelledError: If the scan is cancelled before phase 2.
        """
        tool = self._plugin.name

        discovery = self.discovery_plan()
        self._announce(context, discovery)
        discovery_artifact = artifact_path.with_name(f"{artifact_path.stem}-discovery{artifact_path.suffix}")
        first = self._plugin.invoke(
            context,
            self._build_args(context, discovery, discovery_artifact),
            artifact_path=discovery_artifact,
        )
        technologies = detect_technologies(self._plugin.parse_output(first, context))
        LOGGER.info(f"{tool} discovery detected: {', '.join(sorted(technologies)) or 'nothing'}")

        if context.cancel_token.cancelled:
            raise ScanCancelledError(context.scan_id)

        deep = self.deep_plan(technologies)
        self._announce(context, deep, technologies)
        deep_artifact = artifact_path.with_name(f"{artifact_path.stem}-deep{artifact_path.suffix}")
        second = self._plugin.invoke(
            context,
            self._build_args(context, deep, deep_artifact),
            artifact_path=deep_artifact,
        )

        if context.cancel_token.cancelled:
            raise ScanCancelledError(context.scan_id)

        results = [first, second]
        combined = self._concatenate(results, artifact_path)
        exit_code, error = reduce_exit_codes((r.exit_code for r in results), self._plugin.success_exit_codes)
        merged = ExecutionResult(
            tool_name=tool,
            exit_code=exit_code,
            stdout="\n".join(r.stdout for r in results if r.stdout),
            stderr="\n".join(r.stderr for r in results if r.stderr),
            artifact_path=combined,
            duration_ms=first.duration_ms + second.duration_ms,
            timed_out=first.timed_out or second.timed_out,
            error=error,
        )
        return PhasedOutcome(merged, technologies, [discovery, deep])

    def _announce(
        self,
        context: ScanContext,
        plan: PhasePlan,
        technologies: Optional[Set[str]] = None,
    ) -> None:
        context.stream_handler.emit(
            ProgressEvent(
                ProgressEventType.SCAN_PHASE,
                context.scan_id,
                self._plugin.name,
                f"Phase {plan.label}: {len(plan.templates)} template set(s)",
                {
                    "phase": plan.label,
                    "templates": list(plan.templates),
                    "technologies": sorted(technologies or ()),
                },
            )
        )

    def _concatenate(self, results: List[ExecutionResult], artifact_path: Path) -> Optional[Path]:
        chunks: List[str] = []
        for result in results:
            path = result.artifact_path
            if path is None or not path.exists():
                continue
            try:
                text = path.read_text(encoding="utf-8", errors="replace").strip()
            except OSError as e:
                LOGGER.warning(f"Skipping unreadable phase artifact {path}: {e}")
                continue
            if text:
                chunks.append(text)
        if not chunks:
            return None
        artifact_path.write_text("\n".join(chunks) + "\n", encoding="utf-8")
        return artifact_path

