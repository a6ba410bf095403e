"""Katana crawler plugin for URL discovery ahead of the DAST tools.

Katana produces no findings. It crawls the configured target URLs and
prints one JSON record per discovered request; the orchestrator runs it
before the other tools and merges what it found into ``target_urls`` so
nuclei and zap cover the crawled surface too.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple
from urllib.parse import parse_qsl, urlsplit

from scanweave.core.logging import get_logger
from scanweave.core.models import (
    ExecutionResult,
    InputKind,
    NormalizedFinding,
    OutputFormat,
    ScanContext,
)
from scanweave.core.paths import as_list
from scanweave.plugins.scanners.base import ScannerPlugin
from scanweave.strategies.phased import normalize_target_url

LOGGER = get_logger(__name__)

# depth, concurrency, requests per second, per-request timeout
CRAWL_PRESETS: Dict[str, Dict[str, int]] = {
    "quick": {"depth": 2, "concurrency": 10, "rate_limit": 30, "request_timeout": 10},
    "standard": {"depth": 4, "concurrency": 20, "rate_limit": 50, "request_timeout": 15},
    "full": {"depth": 6, "concurrency": 50, "rate_limit": 150, "request_timeout": 120},
}
DEFAULT_SCAN_MODE = "standard"

# Quick crawls are capped, full crawls get a floor since headless is slow.
QUICK_MAX_TIMEOUT = 120
STANDARD_MAX_TIMEOUT = 300
FULL_MIN_TIMEOUT = 600

HEADLESS_FLAGS: Dict[str, List[str]] = {
    "quick": [],
    "standard": ["-headless", "-js-crawl"],
    "full": ["-headless", "-js-crawl", "-automatic-form-fill", "-no-sandbox", "-system-chrome"],
}

DEFAULT_EXCLUDED_EXTENSIONS = ["png", "jpg", "jpeg", "gif", "svg", "ico", "css", "woff", "woff2", "ttf"]
DEFAULT_MAX_URLS = 200

JS_FILE = re.compile(r"\.js(\?|$)", re.IGNORECASE)


@dataclass
class CrawlResult:
    """URLs, query parameters and scripts found by one crawl."""

    urls: List[str] = field(default_factory=list)
    params: List[Tuple[str, str]] = field(default_factory=list)
    js_files: List[str] = field(default_factory=list)


def _endpoint(record: Dict[str, Any]) -> Optional[str]:
    request = record.get("request")
    if isinstance(request, dict):
        return request.get("endpoint") or request.get("url")
    return record.get("endpoint") or record.get("url")


def parse_crawl_output(text: str) -> CrawlResult:
    """Collect unique http(s) URLs from katana output.

    Accepts both ``-jsonl`` records and the plain one-URL-per-line form.
    Query parameters are recorded once per path and name.
    """
    crawl = CrawlResult()
    if not text:
        return crawl

    candidates: List[str] = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            candidates.append(line)
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        endpoint = _endpoint(record) if isinstance(record, dict) else None
        if isinstance(endpoint, str):
            candidates.append(endpoint.strip())

    seen: Set[str] = set()
    seen_params: Set[Tuple[str, str]] = set()
    for url in candidates:
        if url in seen or not url.startswith(("http://", "https://")):
            continue
        seen.add(url)
        crawl.urls.append(url)
        if JS_FILE.search(url):
            crawl.js_files.append(url)
        parts = urlsplit(url)
        for name, _ in parse_qsl(parts.query, keep_blank_values=True):
            key = (parts.path or "/", name)
            if key not in seen_params:
                seen_params.add(key)
                crawl.params.append((url, name))
    return crawl


def crawl_timeout(mode: str, default: int) -> int:
    if mode == "quick":
        return min(default, QUICK_MAX_TIMEOUT)
    if mode == "full":
        return max(default, FULL_MIN_TIMEOUT)
    return min(default, STANDARD_MAX_TIMEOUT)


class KatanaScanner(ScannerPlugin):
    """Crawls target URLs with katana to widen the DAST target list."""

    executable = "katana"
    version_args = ["-version"]
    discovers_targets = True

    @property
    def name(self) -> str:
        return "katana"

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

    def scan_mode(self, context: ScanContext) -> str:
        options = context.tool_options(self.name)
        mode = str(options.get("scan_mode") or context.config.get("scan_mode") or DEFAULT_SCAN_MODE)
        if mode not in CRAWL_PRESETS:
            LOGGER.warning(f"Unknown katana scan mode '{mode}', using {DEFAULT_SCAN_MODE}")
            mode = DEFAULT_SCAN_MODE
        return mode

    def build_args(self, context: ScanContext, mode: str, headless: bool) -> List[str]:
        """Argument vector for one crawl of the targets file."""
        options = context.tool_options(self.name)
        preset = CRAWL_PRESETS[mode]
        args = [
            "-list", str(context.artifact_path(self.name, "-targets.txt")),
            "-jsonl",
            "-silent",
            "-no-color",
            "-depth", str(options.get("depth") or preset["depth"]),
            "-concurrency", str(preset["concurrency"]),
            "-rate-limit", str(options.get("rate_limit") or preset["rate_limit"]),
            "-timeout", str(preset["request_timeout"]),
        ]
        if headless:
            args.extend(HEADLESS_FLAGS[mode])

        headers = options.get("headers") or {}
        if isinstance(headers, dict):
            for key, value in headers.items():
                args.extend(["-H", f"{key}: {value}"])
        cookies = options.get("cookies")
        if cookies:
            args.extend(["-H", f"Cookie: {cookies}"])

        excluded = DEFAULT_EXCLUDED_EXTENSIONS
        if "exclude_extensions" in options:
            excluded = as_list(options.get("exclude_extensions"))
        if excluded:
            args.extend(["-extension-filter", ",".join(excluded)])
        return args

    def scan(self, context: ScanContext) -> ExecutionResult:
        targets = self.target_urls(context)
        context.artifact_path(self.name, "-targets.txt").write_text("\n".join(targets) + "\n", encoding="utf-8")
        mode = self.scan_mode(context)
        headless = bool(context.tool_options(self.name).get("headless", False)) and bool(HEADLESS_FLAGS[mode])
        LOGGER.info(f"katana crawling {', '.join(targets)} in {mode} mode")

        artifact = context.artifact_path(self.name, ".jsonl")
        timeout = crawl_timeout(mode, context.timeout)
        result = self.invoke(context, self.build_args(context, mode, headless), timeout=timeout)

        if headless and (result.error or result.timed_out) and not context.cancel_token.cancelled:
            LOGGER.warning(
                f"katana headless crawl failed (exit={result.exit_code}, timed_out={result.timed_out}), "
                "retrying without headless"
            )
            result = self.invoke(
                context,
                self.build_args(context, mode, headless=False),
                timeout=crawl_timeout(DEFAULT_SCAN_MODE, context.timeout),
            )

        if result.stdout:
            artifact.write_text(result.stdout, encoding="utf-8")
            result = replace(result, artifact_path=artifact)
        return result

    def parse_output(self, result: ExecutionResult, context: ScanContext) -> List[NormalizedFinding]:
        return []

    def discovered_targets(self, result: ExecutionResult, context: ScanContext) -> List[str]:
        """Crawled URLs, capped at the ``max_urls`` option."""
        crawl = parse_crawl_output(result.stdout)
        limit = int(context.tool_options(self.name).get("max_urls") or DEFAULT_MAX_URLS)
        LOGGER.info(
            f"katana discovered {len(crawl.urls)} URL(s), {len(crawl.params)} parameter(s), "
            f"{len(crawl.js_files)} script(s)"
        )
        if len(crawl.urls) > limit:
            LOGGER.info(f"Keeping the first {limit} discovered URL(s)")
        return crawl.urls[:limit]
