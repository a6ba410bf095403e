"""Configuration loading, validation and ignore patterns."""

from scanweave.config.ignore import IgnorePatterns, load_ignore_patterns
from scanweave.config.loader import ConfigError, load_config
from scanweave.config.models import ScanweaveConfig

__all__ = ["ConfigError", "IgnorePatterns", "ScanweaveConfig", "load_config", "load_ignore_patterns"]
