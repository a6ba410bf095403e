"""OWASP ZAP scanner plugin driven through the ZAP REST API.

ZAP runs in a warm container that outlives individual scans. Each scan
acquires the container, starts a fresh session, spiders the target, waits
for the passive scanner, runs the active scanner and collects the alerts.
"""

from __future__ import annotations

import json
import re
import secrets
import sys
import threading
import time
from html import unescape
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from scanweave.containers.warm import ContainerSpec, WarmContainer
from scanweave.core.exceptions import ContainerError, ScanCancelledError, ScanweaveError
from scanweave.core.logging import get_logger
from scanweave.core.models import (
    ExecutionResult,
    InputKind,
    NormalizedFinding,
    OutputFormat,
    ScanContext,
    Severity,
)
from scanweave.core.paths import as_list
from scanweave.core.subprocess_runner import ProcessRunner, ToolInvocation
from scanweave.normalizer.fingerprint import compute_fingerprint
from scanweave.normalizer.severity import normalize_confidence, normalize_severity
from scanweave.plugins.scanners.base import ScannerPlugin
from scanweave.strategies.phased import normalize_target_url

LOGGER = get_logger(__name__)

DEFAULT_IMAGE = "ghcr.io/zaproxy/zaproxy:stable"
DEFAULT_CONTAINER_NAME = "scanweave-zap"
ZAP_PORT = 8080
API_TIMEOUT = 30
DOCKER_CHECK_TIMEOUT = 10

SPIDER_POLL_INTERVAL = 2.0
PASSIVE_POLL_INTERVAL = 2.0
PASSIVE_MAX_WAIT = 120.0
ACTIVE_POLL_INTERVAL = 3.0
MAX_ALERTS = 10000

THREADS_PER_HOST: Dict[str, int] = {"low": 2, "medium": 5, "high": 10}
DEFAULT_RATE_LIMIT = "medium"

ZAP_RISK_MAP: Dict[str, Severity] = {
    "high": Severity.CRITICAL,
    "medium": Severity.HIGH,
    "low": Severity.MEDIUM,
    "informational": Severity.INFO,
}

DOCKER_HOST_ALIAS = "host.docker.internal"
_LOOPBACK = re.compile(r"localhost|127\.0\.0\.1", re.IGNORECASE)
_TAGS = re.compile(r"<[^>]*>")
_URLS = re.compile(r"https?://[^\s<>\"]+")


class ZapApiError(ScanweaveError):
    """Raised when the ZAP API answers with an error or garbage."""


def strip_html(text: Optional[str]) -> str:
    """Drop tags, decode entities and collapse whitespace."""
    if not text:
        return ""
    return " ".join(unescape(_TAGS.sub("", text)).split())


def docker_accessible_url(url: str, platform: str = sys.platform) -> str:
    """Rewrite loop-back hosts so a container on Docker Desktop can reach them."""
    if platform in ("darwin", "win32"):
        return _LOOPBACK.sub(DOCKER_HOST_ALIAS, url)
    return url


class ZapClient:
    """Thin JSON client for the ZAP API.

    Args:
        base_url: Published address of the ZAP container.
        api_key: Key configured with ``api.key``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = API_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def call(self, component: str, kind: str, name: str, **params: Any) -> Dict[str, Any]:
        """Call ``/JSON/<component>/<kind>/<name>/`` and decode the response.

        Raises:
            ZapApiError: On HTTP errors, connection failures or invalid JSON.
        """
        query = urlencode({**{k: str(v) for k, v in params.items()}, "apikey": self.api_key})
        url = f"{self.base_url}/JSON/{component}/{kind}/{name}/?{query}"
        # ZAP validates the Host header against its own listen address.
        request = Request(url, headers={"Host": f"localhost:{ZAP_PORT}"})
        try:
            with urlopen(request, timeout=self.timeout) as response:  # nosec B310
                body = response.read().decode("utf-8", errors="replace")
        except HTTPError as e:
            raise ZapApiError(f"ZAP API error on {component}/{kind}/{name}: HTTP {e.code}") from e
        except (URLError, OSError) as e:
            raise ZapApiError(f"ZAP API unreachable: {e}") from e
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise ZapApiError(f"Invalid ZAP API response: {body[:200]}") from e
        if not isinstance(data, dict):
            raise ZapApiError(f"Unexpected ZAP API response: {body[:200]}")
        return data

    def is_ready(self) -> bool:
        try:
            return bool(self.call("core", "view", "version").get("version"))
        except ZapApiError:
            return False


ClientFactory = Callable[[str, str], ZapClient]


class ZapScanner(ScannerPlugin):
    """Spider, passive and active scan of target URLs with ZAP."""

    executable = "docker"
    version_args = ["version", "--format", "{{.Server.Version}}"]

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        client_factory: ClientFactory = ZapClient,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(runner)
        self._client_factory = client_factory
        self._sleep = sleep
        self._clock = clock
        self._container: Optional[WarmContainer] = None
        self._api_key: Optional[str] = None
        self._container_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "zap"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({InputKind.URL})

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.API

    def is_available(self) -> bool:
        """Docker must be installed and its daemon reachable."""
        if not self.runner.is_command_available("docker"):
            return False
        try:
            result = self.runner.run(
                ToolInvocation(
                    tool_name=self.name,
                    argv=["docker", "ps", "-q"],
                    cwd=Path.cwd(),
                    timeout=DOCKER_CHECK_TIMEOUT,
                )
            )
        except ScanweaveError as e:
            LOGGER.debug(f"Docker daemon check failed: {e}")
            return False
        if result.exit_code != 0:
            LOGGER.warning(f"Docker daemon not running: {result.stderr.strip()}")
            return False
        return True

    def applies_to(self, context: ScanContext) -> Optional[str]:
        if not context.config.get("target_urls"):
            return "no target URLs configured"
        return None

    def container_for(self, options: Dict[str, Any]) -> WarmContainer:
        """Return the warm container, creating its definition on first use.

        Concurrent scans share one definition and one API key.
        """
        with self._container_lock:
            if self._container is None:
                self._api_key = str(options.get("api_key") or secrets.token_hex(16))
                spec = ContainerSpec(
                    name=options.get("container_name") or DEFAULT_CONTAINER_NAME,
                    image=options.get("image") or DEFAULT_IMAGE,
                    container_port=ZAP_PORT,
                    command=[
                        "zap.sh", "-daemon",
                        "-host", "0.0.0.0",
                        "-port", str(ZAP_PORT),
                        "-config", f"api.key={self._api_key}",
                        "-config", "api.addrs.addr.name=.*",
                        "-config", "api.addrs.addr.regex=true",
                    ],
                )
                self._container = WarmContainer(
                    spec,
                    readiness_check=lambda url: self._client_factory(url, self._api_key or "").is_ready(),
                    runner=self.runner,
                    sleep=self._sleep,
                    clock=self._clock,
                )
            return self._container

    def scan(self, context: ScanContext) -> ExecutionResult:
        start = self._clock()
        options = context.tool_options(self.name)
        preset = str(options.get("rate_limit") or context.config.get("rate_limit") or DEFAULT_RATE_LIMIT)
        threads = THREADS_PER_HOST.get(preset.lower(), THREADS_PER_HOST[DEFAULT_RATE_LIMIT])
        artifact = context.artifact_path(self.name, "-alerts.json")
        deadline = start + context.timeout
        targets = [normalize_target_url(u) for u in as_list(context.config.get("target_urls"))]

        alerts: List[Dict[str, Any]] = []
        timed_out = False
        try:
            container = self.container_for(options)
            with container.acquire(timeout=context.timeout, holder=context.scan_id) as handle:
                client = self._client_factory(handle.base_url, self._api_key or "")
                client.call("core", "action", "newSession", overwrite="true")
                for target in targets:
                    url = docker_accessible_url(target)
                    timed_out = not self._scan_target(client, context, url, threads, deadline,
                                                      passive_only=bool(options.get("passive_only")))
                    alerts.extend(
                        client.call("core", "view", "alerts", baseurl=url, start=0, count=MAX_ALERTS)
                        .get("alerts") or []
                    )
                    if timed_out:
                        LOGGER.warning(f"ZAP scan of {target} hit the {context.timeout}s budget")
                        break
        except (ContainerError, ZapApiError) as e:
            LOGGER.error(f"ZAP scan failed: {e}")
            return ExecutionResult(
                tool_name=self.name,
                exit_code=1,
                stderr=str(e),
                duration_ms=int((self._clock() - start) * 1000),
                error=True,
            )

        artifact.write_text(json.dumps({"alerts": alerts}), encoding="utf-8")
        return ExecutionResult(
            tool_name=self.name,
            exit_code=0,
            stdout=f"Scan completed with {len(alerts)} alerts",
            artifact_path=artifact,
            duration_ms=int((self._clock() - start) * 1000),
            timed_out=timed_out,
        )

    def _scan_target(
        self,
        client: ZapClient,
        context: ScanContext,
        url: str,
        threads: int,
        deadline: float,
        passive_only: bool = False,
    ) -> bool:
        """Run spider, passive wait and active scan; False when the budget ran out."""
        progress = context.stream_handler.progress

        progress(context.scan_id, self.name, f"Spidering {url}", phase="spider", percent=5)
        spider_id = client.call(
            "spider", "action", "scan", url=url, maxChildren=0, recurse="true", subtreeOnly="false"
        ).get("scan")
        if not self._poll(client, context, "spider", spider_id, SPIDER_POLL_INTERVAL, deadline, 5, 40):
            return False

        progress(context.scan_id, self.name, "Waiting for passive scan", phase="passive", percent=40)
        passive_deadline = min(deadline, self._clock() + PASSIVE_MAX_WAIT)
        while int(client.call("pscan", "view", "recordsToScan").get("recordsToScan", 0)) > 0:
            self._check_cancelled(client, context)
            if self._clock() >= passive_deadline:
                LOGGER.warning("Passive scan did not drain, continuing")
                break
            self._sleep(PASSIVE_POLL_INTERVAL)

        if passive_only:
            return True

        progress(context.scan_id, self.name, f"Active scan of {url}", phase="active", percent=50)
        client.call("ascan", "action", "setOptionThreadPerHost", Integer=threads)
        active_id = client.call(
            "ascan", "action", "scan", url=url, recurse="true", inScopeOnly="false"
        ).get("scan")
        return self._poll(client, context, "ascan", active_id, ACTIVE_POLL_INTERVAL, deadline, 50, 95)

    def _poll(
        self,
        client: ZapClient,
        context: ScanContext,
        component: str,
        scan_id: Any,
        interval: float,
        deadline: float,
        low: int,
        high: int,
    ) -> bool:
        last = -1
        while True:
            self._check_cancelled(client, context)
            status = int(client.call(component, "view", "status", scanId=scan_id).get("status", 0))
            if status > last:
                last = status
                context.stream_handler.progress(
                    context.scan_id, self.name, f"{component} {status}%",
                    phase=component, percent=low + (high - low) * status // 100,
                )
            if status >= 100:
                return True
            if self._clock() >= deadline:
                client.call(component, "action", "stopAllScans")
                return False
            self._sleep(interval)

    def _check_cancelled(self, client: ZapClient, context: ScanContext) -> None:
        if not context.cancel_token.cancelled:
            return
        for component in ("spider", "ascan"):
            try:
                client.call(component, "action", "stopAllScans")
            except ZapApiError as e:
                LOGGER.debug(f"Failed to stop {component}: {e}")
        raise ScanCancelledError(context.scan_id)

    def parse_output(self, result: ExecutionResult, context: ScanContext) -> List[NormalizedFinding]:
        path = result.artifact_path
        if path is None or not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8", errors="replace"))
        except (OSError, json.JSONDecodeError) as e:
            LOGGER.warning(f"Failed to parse ZAP alerts: {e}")
            return []

        alerts = data.get("alerts") if isinstance(data, dict) else None
        findings: List[NormalizedFinding] = []
        for alert in alerts or []:
            if isinstance(alert, dict):
                findings.append(self._convert(alert))
        return findings

    def _convert(self, alert: Dict[str, Any]) -> NormalizedFinding:
        alert_ref = str(alert.get("alertRef") or alert.get("pluginId") or "")
        url = alert.get("url") or ""
        param = alert.get("param") or ""
        cwe = str(alert.get("cweid") or "")
        tags = alert.get("tags") or {}

        return NormalizedFinding(
            source_tool=self.name,
            rule_id=str(alert.get("pluginId") or alert_ref),
            severity=normalize_severity(alert.get("risk"), ZAP_RISK_MAP),
            confidence=normalize_confidence(alert.get("confidence")),
            title=alert.get("name") or alert.get("alert") or alert_ref,
            description=strip_html(alert.get("description")),
            file_path=url,
            start_line=0,
            weakness_ids=[f"CWE-{cwe}"] if cwe not in ("", "-1", "0") else [],
            references=_URLS.findall(alert.get("reference") or ""),
            fix=strip_html(alert.get("solution")) or None,
            fingerprint=compute_fingerprint(self.name, alert_ref, url, param),
            metadata={
                "method": alert.get("method"),
                "param": param or None,
                "attack": alert.get("attack"),
                "evidence": alert.get("evidence"),
                "owasp": [v for k, v in tags.items() if "owasp" in k.lower()] if isinstance(tags, dict) else [],
                "other_info": alert.get("other"),
            },
        )
