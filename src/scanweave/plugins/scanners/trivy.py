"""Trivy scanner plugin for dependency, IaC and container image scanning.

A filesystem pass always runs; each configured container image adds one
image pass. The passes are merged into a single SARIF document.
"""

from __future__ import annotations

import re
from typing import FrozenSet, List

from scanweave.core.logging import get_logger
from scanweave.core.models import ExecutionResult, InputKind, ScanContext
from scanweave.core.paths import as_list, exclude_args
from scanweave.plugins.scanners.base import SarifScannerPlugin
from scanweave.strategies.merge import MergeStrategy, ScanPass

LOGGER = get_logger(__name__)

DEFAULT_FS_SCANNERS = ["vuln"]
ALWAYS_SKIPPED_DIRS = [".git"]
TRIVY_ENV = {"TRIVY_NO_PROGRESS": "true"}

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]+")


def _image_slug(image: str) -> str:
    return _UNSAFE_NAME.sub("_", image).strip("_") or "image"


class TrivyScanner(SarifScannerPlugin):
    """Runs ``trivy fs`` plus one ``trivy image`` per configured image."""

    executable = "trivy"

    @property
    def name(self) -> str:
        return "trivy"

    @property
    def input_kinds(self) -> FrozenSet[InputKind]:
        return frozenset({
            InputKind.DEPENDENCIES,
            InputKind.CONTAINER_IMAGE,
            InputKind.INFRASTRUCTURE,
        })

    def fs_args(self, context: ScanContext) -> List[str]:
        output = context.artifact_path(self.name, "-fs.sarif")
        scanners = as_list(context.tool_options(self.name).get("scanners")) or DEFAULT_FS_SCANNERS
        args = [
            "fs",
            "--format", "sarif",
            "--output", str(output),
            "--scanners", ",".join(scanners),
        ]
        for directory in ALWAYS_SKIPPED_DIRS + exclude_args(context.exclude_paths):
            args.extend(["--skip-dirs", directory])
        args.append(str(context.target_path))
        return args

    def image_args(self, context: ScanContext, image: str) -> List[str]:
        output = context.artifact_path(self.name, f"-image-{_image_slug(image)}.sarif")
        return [
            "image",
            "--format", "sarif",
            "--output", str(output),
            "--scanners", "vuln",
            image,
        ]

    def build_passes(self, context: ScanContext) -> List[ScanPass]:
        passes = [
            ScanPass(
                "filesystem",
                self.fs_args(context),
                context.artifact_path(self.name, "-fs.sarif"),
                env=dict(TRIVY_ENV),
            )
        ]
        for image in as_list(context.config.get("container_images")):
            passes.append(
                ScanPass(
                    f"image {image}",
                    self.image_args(context, image),
                    context.artifact_path(self.name, f"-image-{_image_slug(image)}.sarif"),
                    env=dict(TRIVY_ENV),
                )
            )
        return passes

    def scan(self, context: ScanContext) -> ExecutionResult:
        passes = self.build_passes(context)
        LOGGER.info(f"Running trivy with {len(passes)} pass(es) on {context.target_path}")
        return MergeStrategy(self).run(context, passes, context.artifact_path(self.name, ".sarif"))
