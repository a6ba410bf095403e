"""scanweave subcommands.

Every subcommand is a ``Command``. The runner only parses arguments and
calls ``Command.run``, which loads the layered configuration for commands
that need it and turns crashes into the scanner-error exit code.
"""

from __future__ import annotations

import traceback
from abc import ABC, abstractmethod
from argparse import Namespace
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from scanweave.cli.config_bridge import ConfigBridge
from scanweave.cli.exit_codes import EXIT_INVALID_USAGE, EXIT_SCANNER_ERROR
from scanweave.config.loader import ConfigError, load_config
from scanweave.core.logging import get_logger

if TYPE_CHECKING:
    from scanweave.config.models import ScanweaveConfig

LOGGER = get_logger(__name__)


class Command(ABC):
    """A ``scanweave`` subcommand.

    Args:
        version: scanweave version, for commands that print or record it.
    """

    #: Load the global, project and CLI configuration layers before executing.
    needs_config: bool = False

    def __init__(self, version: str = "") -> None:
        self._version = version

    @property
    @abstractmethod
    def name(self) -> str:
        """Subcommand name as typed on the command line."""

    @abstractmethod
    def execute(self, args: Namespace, config: Optional["ScanweaveConfig"] = None) -> int:
        """Run the subcommand and return its exit code."""

    def project_root(self, args: Namespace) -> Path:
        """Directory whose ``.scanweave.yml`` applies to this invocation."""
        return Path(getattr(args, "path", None) or Path.cwd()).resolve()

    def run(self, args: Namespace) -> int:
        """Load configuration when needed, then execute.

        Returns:
            The command's exit code; EXIT_INVALID_USAGE for a bad config
            file and EXIT_SCANNER_ERROR for an unexpected crash.
        """
        config: Optional["ScanweaveConfig"] = None
        if self.needs_config:
            try:
                config = load_config(
                    project_root=self.project_root(args),
                    cli_config_path=getattr(args, "config", None),
                    cli_overrides=ConfigBridge.args_to_overrides(args),
                )
            except ConfigError as e:
                LOGGER.error(str(e))
                return EXIT_INVALID_USAGE

        try:
            return self.execute(args, config)
        except Exception as e:
            if getattr(args, "debug", False):
                traceback.print_exc()
            LOGGER.error(f"{self.name} failed: {type(e).__name__}: {e}")
            return EXIT_SCANNER_ERROR


# Submodules import Command from here.
# ruff: noqa: E402
from scanweave.cli.commands.scan import ScanCommand
from scanweave.cli.commands.status import StatusCommand
from scanweave.cli.commands.validate import ValidateCommand

__all__ = [
    "Command",
    "ScanCommand",
    "StatusCommand",
    "ValidateCommand",
]
