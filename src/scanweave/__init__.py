"""scanweave - orchestration core for external security scanners.

Runs heterogeneous scanning tools with bounded resources, normalizes their
outputs into one finding schema, and tracks findings across scans.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
