"""Path management for the scanweave home directory.

Handles the ~/.scanweave directory structure and path resolution.
Each scan gets an exclusive working directory under ~/.scanweave/work/.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

# Default directory name under user home
DEFAULT_HOME_DIR_NAME = ".scanweave"

# Environment variable to override home directory
SCANWEAVE_HOME_ENV = "SCANWEAVE_HOME"

_SAFE_SCAN_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def get_scanweave_home() -> Path:
    """Get the scanweave home directory path.

    Resolution order:
    1. SCANWEAVE_HOME environment variable (if set)
    2. ~/.scanweave (default)
    """
    env_home = os.environ.get(SCANWEAVE_HOME_ENV)
    if env_home:
        return Path(env_home)
    return Path.home() / DEFAULT_HOME_DIR_NAME


@dataclass
class ScanweavePaths:
    """Manages paths within the scanweave home directory.

    Directory structure:
        ~/.scanweave/
            work/<scan_id>/   - Per-scan artifacts, removed after aggregation
            cache/            - Parsed diffs and scan results
            config/           - Global configuration (config.yml)
            logs/             - Debug/diagnostic logs
    """

    home: Path

    _WORK_DIR: ClassVar[str] = "work"
    _CACHE_DIR: ClassVar[str] = "cache"
    _CONFIG_DIR: ClassVar[str] = "config"
    _LOGS_DIR: ClassVar[str] = "logs"

    @classmethod
    def default(cls) -> "ScanweavePaths":
        """Create paths from the default scanweave home."""
        return cls(get_scanweave_home())

    @property
    def work_dir(self) -> Path:
        return self.home / self._WORK_DIR

    @property
    def cache_dir(self) -> Path:
        return self.home / self._CACHE_DIR

    @property
    def config_dir(self) -> Path:
        return self.home / self._CONFIG_DIR

    @property
    def logs_dir(self) -> Path:
        return self.home / self._LOGS_DIR

    @property
    def global_config_file(self) -> Path:
        return self.config_dir / "config.yml"

    def scan_work_dir(self, scan_id: str) -> Path:
        """Exclusive working directory for one scan.

        Raises:
            ValueError: If the scan id could escape the work directory.
        """
        if not _SAFE_SCAN_ID.match(scan_id) or ".." in scan_id:
            raise ValueError(f"Invalid scan id: {scan_id!r}")
        return self.work_dir / scan_id

    def ensure_directories(self) -> None:
        """Create all required directories if they don't exist."""
        for directory in (self.home, self.work_dir, self.cache_dir, self.config_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)
