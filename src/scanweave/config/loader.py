"""Configuration file loading and merging.

Handles loading configuration from YAML files with:
- Project-level config (.scanweave.yml)
- Global config (~/.scanweave/config/config.yml)
- Environment variable expansion (${VAR})
- Config merging with proper precedence
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from scanweave.bootstrap.paths import get_scanweave_home
from scanweave.config.models import (
    CategoriesConfig,
    DiffConfig,
    OutputConfig,
    PipelineConfig,
    ProjectConfig,
    ScanweaveConfig,
    TargetsConfig,
    ToolConfig,
)
from scanweave.config.validation import validate_config
from scanweave.core.exceptions import ScanweaveError
from scanweave.core.logging import get_logger
from scanweave.core.paths import as_list

LOGGER = get_logger(__name__)

# Config file names
PROJECT_CONFIG_NAMES = [".scanweave.yml", ".scanweave.yaml", "scanweave.yml", "scanweave.yaml"]
GLOBAL_CONFIG_NAME = "config.yml"

# Environment variable pattern: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(ScanweaveError):
    """Configuration loading or parsing error."""


def load_config(
    project_root: Path,
    cli_config_path: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
) -> ScanweaveConfig:
    """Load configuration with proper precedence.

    Precedence (highest to lowest):
    1. CLI flags (cli_overrides)
    2. Custom config file (cli_config_path) OR project config (.scanweave.yml)
    3. Global config (~/.scanweave/config/config.yml)
    4. Built-in defaults

    Raises:
        ConfigError: If a specified config file doesn't exist or has parse errors.
    """
    sources: List[str] = []
    merged: Dict[str, Any] = {}

    global_path = find_global_config()
    if global_path is not None:
        try:
            global_dict = load_yaml_file(global_path)
        except (ConfigError, yaml.YAMLError, OSError) as e:
            LOGGER.warning(f"Failed to load global config: {e}")
        else:
            validate_config(global_dict, source=str(global_path))
            merged = merge_configs(merged, global_dict)
            sources.append(f"global:{global_path}")
            LOGGER.debug(f"Loaded global config from {global_path}")

    if cli_config_path:
        if not cli_config_path.exists():
            raise ConfigError(f"Config file not found: {cli_config_path}")
        project_path: Optional[Path] = cli_config_path
        label = "custom"
    else:
        project_path = find_project_config(project_root)
        label = "project"

    if project_path is not None:
        try:
            project_dict = load_yaml_file(project_path)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {project_path}: {e}") from e
        validate_config(project_dict, source=str(project_path))
        merged = merge_configs(merged, project_dict)
        sources.append(f"{label}:{project_path}")
        LOGGER.debug(f"Loaded {label} config from {project_path}")

    if cli_overrides:
        merged = merge_configs(merged, cli_overrides)
        sources.append("cli")
        LOGGER.debug("Applied CLI overrides")

    config = dict_to_config(merged)
    config._config_sources = sources
    LOGGER.debug(f"Config loaded from sources: {sources}")
    return config


def find_project_config(project_root: Path) -> Optional[Path]:
    """Find the first project config file in ``project_root``."""
    for name in PROJECT_CONFIG_NAMES:
        config_path = project_root / name
        if config_path.exists():
            return config_path
    return None


def find_global_config() -> Optional[Path]:
    """Find global config at ~/.scanweave/config/config.yml."""
    config_path = get_scanweave_home() / "config" / GLOBAL_CONFIG_NAME
    if config_path.exists():
        return config_path
    return None


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML config file, expanding environment variables.

    Raises:
        yaml.YAMLError: If YAML parsing fails.
        ConfigError: If the document is not a mapping.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(data).__name__}")
    return expand_env_vars(data)


def expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(data, dict):
        return {k: expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        return ENV_VAR_PATTERN.sub(_env_var_replacer, data)
    return data


def _env_var_replacer(match: re.Match[str]) -> str:
    var_name = match.group(1)
    default_value = match.group(2)

    value = os.environ.get(var_name)
    if value is not None:
        return value
    if default_value is not None:
        return default_value

    LOGGER.warning(f"Environment variable ${var_name} is not set and has no default")
    return ""


def merge_configs(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two config dicts, with overlay taking precedence.

    Dicts merge recursively; lists and scalars in the overlay replace the base.
    """
    result = base.copy()
    for key, overlay_value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(overlay_value, dict):
            result[key] = merge_configs(result[key], overlay_value)
        else:
            result[key] = overlay_value
    return result


def _parse_tools(tools_data: Any) -> Dict[str, ToolConfig]:
    """Parse ``tools`` as a mapping or a plain list of names."""
    tools: Dict[str, ToolConfig] = {}
    if isinstance(tools_data, list):
        for name in tools_data:
            if isinstance(name, str):
                tools[name.lower()] = ToolConfig()
        return tools
    if not isinstance(tools_data, dict):
        return tools

    for name, tool_data in tools_data.items():
        if isinstance(tool_data, bool):
            tools[str(name).lower()] = ToolConfig(enabled=tool_data)
        elif isinstance(tool_data, dict):
            tools[str(name).lower()] = ToolConfig(
                enabled=bool(tool_data.get("enabled", True)),
                options={k: v for k, v in tool_data.items() if k != "enabled"},
            )
        else:
            tools[str(name).lower()] = ToolConfig()
    return tools


def dict_to_config(data: Dict[str, Any]) -> ScanweaveConfig:
    """Convert a merged config dict to a typed ScanweaveConfig."""
    project_data = data.get("project") or {}
    pipeline_data = data.get("pipeline") or {}
    categories_data = data.get("categories") or {}
    targets_data = data.get("targets") or {}
    diff_data = data.get("diff") or {}
    output_data = data.get("output") or {}

    defaults = PipelineConfig()
    pipeline = PipelineConfig(
        max_workers=int(pipeline_data.get("max_workers", defaults.max_workers)),
        tool_timeout=int(pipeline_data.get("tool_timeout", defaults.tool_timeout)),
        probe_timeout=int(pipeline_data.get("probe_timeout", defaults.probe_timeout)),
        output_limit=int(pipeline_data.get("output_limit", defaults.output_limit)),
    )

    category_defaults = CategoriesConfig()
    categories = CategoriesConfig(
        **{
            name: bool(categories_data.get(name, getattr(category_defaults, name)))
            for name in ("sast", "sca", "secrets", "iac", "dast")
        }
    )

    return ScanweaveConfig(
        project=ProjectConfig(
            name=project_data.get("name", ""),
            languages=[str(lang).lower() for lang in project_data.get("languages") or []],
        ),
        pipeline=pipeline,
        tools=_parse_tools(data.get("tools")),
        categories=categories,
        targets=TargetsConfig(
            urls=as_list(targets_data.get("urls")),
            images=as_list(targets_data.get("images")),
        ),
        rate_limit=str(data.get("rate_limit", "medium")).lower(),
        diff=DiffConfig(context_lines=int(diff_data.get("context_lines", 3))),
        ignore=list(data.get("ignore") or []),
        output=OutputConfig(format=output_data.get("format", "summary")),
        fail_on=data.get("fail_on"),
    )


def get_default_config() -> ScanweaveConfig:
    """Default configuration: every category but DAST, no explicit tools."""
    return ScanweaveConfig()
