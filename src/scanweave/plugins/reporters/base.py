"""Base class for reporter plugins."""

from __future__ import annotations

import io
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Optional

from scanweave.core.logging import get_logger
from scanweave.core.models import ScanResult

LOGGER = get_logger(__name__)


class ReporterPlugin(ABC):
    """Turns a finished ScanResult into one output format.

    Subclasses only implement ``report``; ``render`` and ``write`` build
    on it so every format lands on stdout or in a file the same way.
    """

    #: Suffix for report files in this format.
    file_extension: str = ".txt"

    @property
    @abstractmethod
    def name(self) -> str:
        """Format name as given to ``--format``."""

    @abstractmethod
    def report(self, result: ScanResult, output: IO[str]) -> None:
        """Write ``result`` to ``output`` in this format."""

    def render(self, result: ScanResult) -> str:
        buffer = io.StringIO()
        self.report(result, buffer)
        return buffer.getvalue()

    def default_filename(self, result: ScanResult) -> str:
        return f"scanweave-{result.scan_id}{self.file_extension}"

    def write(self, result: ScanResult, destination: Optional[Path] = None) -> Optional[Path]:
        """Write the report to stdout, a file, or a directory.

        A directory destination gets ``default_filename`` inside it.
        Parent directories are created as needed.

        Returns:
            The file written, or None for stdout.
        """
        if destination is None:
            self.report(result, sys.stdout)
            return None

        path = destination / self.default_filename(result) if destination.is_dir() else destination
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(result), encoding="utf-8")
        LOGGER.info(f"{self.name} report written to {path}")
        return path
