"""Typed configuration for scanweave.

Built from the merged YAML layers by ``scanweave.config.loader``. Tool
options are passed through to adapters untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scanweave.core.subprocess_runner import DEFAULT_OUTPUT_LIMIT, DEFAULT_TIMEOUT


@dataclass
class ProjectConfig:
    """Project metadata."""

    name: str = ""
    languages: List[str] = field(default_factory=list)


@dataclass
class PipelineConfig:
    """Execution limits of the scan pipeline."""

    max_workers: int = 4
    tool_timeout: int = DEFAULT_TIMEOUT
    probe_timeout: int = 10
    output_limit: int = DEFAULT_OUTPUT_LIMIT


@dataclass
class ToolConfig:
    """Per-tool settings; everything but ``enabled`` goes to the adapter."""

    enabled: bool = True
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CategoriesConfig:
    """Which scan categories tool selection may pick from."""

    sast: bool = True
    sca: bool = True
    secrets: bool = True
    iac: bool = True
    dast: bool = False


@dataclass
class TargetsConfig:
    """Non-filesystem scan targets."""

    urls: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)


@dataclass
class DiffConfig:
    context_lines: int = 3


@dataclass
class OutputConfig:
    format: str = "summary"


@dataclass
class ScanweaveConfig:
    """Complete scanweave configuration."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    tools: Dict[str, ToolConfig] = field(default_factory=dict)
    categories: CategoriesConfig = field(default_factory=CategoriesConfig)
    targets: TargetsConfig = field(default_factory=TargetsConfig)
    rate_limit: str = "medium"
    diff: DiffConfig = field(default_factory=DiffConfig)
    ignore: List[str] = field(default_factory=list)
    output: OutputConfig = field(default_factory=OutputConfig)
    fail_on: Optional[str] = None

    # Where the configuration came from, for diagnostics.
    _config_sources: List[str] = field(default_factory=list, repr=False)

    @property
    def sources(self) -> List[str]:
        return list(self._config_sources)

    def tool_enabled(self, name: str) -> bool:
        tool = self.tools.get(name)
        return tool.enabled if tool is not None else True

    def explicit_tools(self) -> List[str]:
        """Tools switched on by name in the config, in file order."""
        return [name for name, tool in self.tools.items() if tool.enabled]

    def disabled_tools(self) -> List[str]:
        return [name for name, tool in self.tools.items() if not tool.enabled]

    def to_scan_config(self) -> Dict[str, Any]:
        """Free-form options handed to adapters through ScanContext.config."""
        return {
            "tools": {name: dict(tool.options) for name, tool in self.tools.items()},
            "target_urls": list(self.targets.urls),
            "container_images": list(self.targets.images),
            "rate_limit": self.rate_limit,
        }
