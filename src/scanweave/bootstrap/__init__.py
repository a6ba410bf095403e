"""Host bootstrap: home directory layout and tool availability."""

from scanweave.bootstrap.health import AvailabilityProber, ProbePartition
from scanweave.bootstrap.paths import ScanweavePaths, get_scanweave_home

__all__ = ["AvailabilityProber", "ProbePartition", "ScanweavePaths", "get_scanweave_home"]
