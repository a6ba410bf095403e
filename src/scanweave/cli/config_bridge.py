"""Bridge between CLI arguments and configuration models."""

from __future__ import annotations

import argparse
from typing import Any, Dict, List, Optional

from scanweave.config.models import ScanweaveConfig
from scanweave.core.logging import get_logger
from scanweave.pipeline.selection import ProjectProfile, select_tools

LOGGER = get_logger(__name__)


def split_tools(value: Optional[str]) -> List[str]:
    """Parse a comma-separated ``--tools`` value."""
    if not value:
        return []
    return [name.strip().lower() for name in value.split(",") if name.strip()]


class ConfigBridge:
    """Translates CLI arguments to configuration objects."""

    @staticmethod
    def args_to_overrides(args: argparse.Namespace) -> Dict[str, Any]:
        """Convert CLI arguments to a config override dict.

        Only options given explicitly on the command line appear, so file
        values survive when a flag is absent.
        """
        overrides: Dict[str, Any] = {}

        targets: Dict[str, Any] = {}
        images = getattr(args, "images", None)
        if images:
            targets["images"] = list(images)
        urls = getattr(args, "target_urls", None)
        if urls:
            targets["urls"] = list(urls)
            # Passing a URL is an explicit request for DAST.
            overrides["categories"] = {"dast": True}
        if targets:
            overrides["targets"] = targets

        max_workers = getattr(args, "max_workers", None)
        if max_workers is not None:
            overrides["pipeline"] = {"max_workers": max_workers}

        context = getattr(args, "context", None)
        if context is not None:
            overrides["diff"] = {"context_lines": context}

        output_format = getattr(args, "format", None)
        if output_format:
            overrides["output"] = {"format": output_format}

        fail_on = getattr(args, "fail_on", None)
        if fail_on:
            overrides["fail_on"] = fail_on

        return overrides

    @staticmethod
    def requested_tools(
        args: argparse.Namespace,
        config: ScanweaveConfig,
        profile: ProjectProfile,
    ) -> List[str]:
        """Tools to request for a scan.

        ``--tools`` wins outright. Otherwise tools are selected from the
        detected project profile, then tools enabled by name in the config
        are added in file order.
        """
        explicit = split_tools(getattr(args, "tools", None))
        if explicit:
            return explicit

        tools = select_tools(
            profile,
            categories=config.categories,
            target_urls=config.targets.urls,
            disabled=config.disabled_tools(),
        )
        for name in config.explicit_tools():
            if name not in tools:
                tools.append(name)
        return tools
