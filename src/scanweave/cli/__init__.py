"""Command-line interface for scanweave."""

from __future__ import annotations

import sys
from typing import Iterable, Optional

from scanweave.cli.runner import CLIRunner


def main(argv: Optional[Iterable[str]] = None) -> int:
    """CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv).

    Returns:
        Exit code.
    """
    return CLIRunner().run(argv)


if __name__ == "__main__":
    sys.exit(main())
