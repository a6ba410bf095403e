"""Scanner plugins for integrating external security tools.

Built-in adapters live in a dispatch table keyed by tool name; extra
adapters are discovered via entry points (scanweave.scanners group).
"""

from typing import Dict, List, Optional, Type

from scanweave.core.subprocess_runner import ProcessRunner
from scanweave.plugins.discovery import SCANNER_ENTRY_POINT_GROUP, discover_plugins
from scanweave.plugins.scanners.bandit import BanditScanner
from scanweave.plugins.scanners.base import SarifScannerPlugin, ScannerPlugin
from scanweave.plugins.scanners.checkov import CheckovScanner
from scanweave.plugins.scanners.gitleaks import GitleaksScanner
from scanweave.plugins.scanners.gosec import GosecScanner
from scanweave.plugins.scanners.katana import KatanaScanner
from scanweave.plugins.scanners.nuclei import NucleiScanner
from scanweave.plugins.scanners.semgrep import SemgrepScanner
from scanweave.plugins.scanners.trivy import TrivyScanner
from scanweave.plugins.scanners.trufflehog import TrufflehogScanner
from scanweave.plugins.scanners.zap import ZapScanner

BUILTIN_SCANNERS: Dict[str, Type[ScannerPlugin]] = {
    "trivy": TrivyScanner,
    "semgrep": SemgrepScanner,
    "checkov": CheckovScanner,
    "gosec": GosecScanner,
    "gitleaks": GitleaksScanner,
    "bandit": BanditScanner,
    "trufflehog": TrufflehogScanner,
    "katana": KatanaScanner,
    "nuclei": NucleiScanner,
    "zap": ZapScanner,
}


def discover_scanner_plugins() -> Dict[str, Type[ScannerPlugin]]:
    """Built-in adapters plus any installed through entry points."""
    plugins = dict(BUILTIN_SCANNERS)
    for name, plugin_class in discover_plugins(SCANNER_ENTRY_POINT_GROUP, ScannerPlugin).items():
        plugins.setdefault(name, plugin_class)
    return plugins


def get_scanner_plugin(name: str, runner: Optional[ProcessRunner] = None) -> Optional[ScannerPlugin]:
    """Get an instantiated scanner plugin by name, or None if unknown."""
    plugin_class = discover_scanner_plugins().get(name)
    if plugin_class is None:
        return None
    return plugin_class(runner=runner)


def build_scanner_registry(runner: Optional[ProcessRunner] = None) -> Dict[str, ScannerPlugin]:
    """Instantiate every known adapter, sharing one process runner."""
    shared = runner or ProcessRunner()
    return {name: cls(runner=shared) for name, cls in discover_scanner_plugins().items()}


def list_available_scanners() -> List[str]:
    """List names of all known scanner plugins."""
    return sorted(discover_scanner_plugins())


__all__ = [
    "BUILTIN_SCANNERS",
    "ScannerPlugin",
    "SarifScannerPlugin",
    "BanditScanner",
    "CheckovScanner",
    "GitleaksScanner",
    "GosecScanner",
    "KatanaScanner",
    "NucleiScanner",
    "SemgrepScanner",
    "TrivyScanner",
    "TrufflehogScanner",
    "ZapScanner",
    "build_scanner_registry",
    "discover_scanner_plugins",
    "get_scanner_plugin",
    "list_available_scanners",
]
