"""Project profiling and tool selection.

Walks the target to count languages and spot infrastructure files, then
picks the adapters worth running for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from scanweave.config.models import CategoriesConfig
from scanweave.core.logging import get_logger

LOGGER = get_logger(__name__)

# Directories to skip during detection
SKIP_DIRS = {
    ".git",
    ".svn",
    ".hg",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    ".tox",
    "dist",
    "build",
    "target",
    "vendor",
    ".next",
    "coverage",
}

EXTENSION_MAP = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".java": "java",
    ".kt": "kotlin",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".rs": "rust",
    ".swift": "swift",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".sql": "sql",
    ".sh": "bash",
}

SEMGREP_LANGUAGES = {
    "python",
    "javascript",
    "typescript",
    "go",
    "java",
    "kotlin",
    "ruby",
    "php",
    "csharp",
    "rust",
    "swift",
    "c",
    "cpp",
    "bash",
}

MAX_DEPTH = 10


@dataclass
class ProjectProfile:
    """What a target contains, as far as tool selection cares."""

    languages: Dict[str, int] = field(default_factory=dict)
    has_dockerfile: bool = False
    has_kubernetes: bool = False
    has_terraform: bool = False
    has_cloudformation: bool = False

    @property
    def primary_language(self) -> Optional[str]:
        if not self.languages:
            return None
        return max(sorted(self.languages), key=lambda lang: self.languages[lang])

    @property
    def language_names(self) -> List[str]:
        return sorted(self.languages, key=lambda lang: (-self.languages[lang], lang))

    @property
    def has_iac(self) -> bool:
        return self.has_dockerfile or self.has_kubernetes or self.has_terraform or self.has_cloudformation

    def iac_flags(self) -> Dict[str, bool]:
        """Flags consumed by the checkov adapter's framework selection."""
        return {
            "has_dockerfile": self.has_dockerfile,
            "has_kubernetes": self.has_kubernetes,
            "has_terraform": self.has_terraform,
            "has_cloudformation": self.has_cloudformation,
        }


def detect_project(root: Path) -> ProjectProfile:
    """Profile the files under ``root``."""
    profile = ProjectProfile()
    for path in _walk_files(root):
        rel = path.relative_to(root).as_posix().lower()
        ext = path.suffix.lower()
        name = path.name.lower()

        lang = EXTENSION_MAP.get(ext)
        if lang:
            profile.languages[lang] = profile.languages.get(lang, 0) + 1
        if ext == ".tf":
            profile.has_terraform = True
        if name == "dockerfile" or name.startswith("dockerfile."):
            profile.has_dockerfile = True
        if ext in (".yaml", ".yml"):
            if "k8s" in rel or "kubernetes" in rel or "deploy" in rel:
                profile.has_kubernetes = True
            if "cloudformation" in rel or "cfn" in rel:
                profile.has_cloudformation = True

    LOGGER.debug(f"Detected languages: {profile.languages}")
    return profile


def _walk_files(root: Path) -> List[Path]:
    files: List[Path] = []

    def _walk(path: Path, depth: int) -> None:
        if depth > MAX_DEPTH:
            return
        try:
            for item in path.iterdir():
                if item.is_dir():
                    if item.name not in SKIP_DIRS:
                        _walk(item, depth + 1)
                elif item.is_file():
                    files.append(item)
        except PermissionError:
            pass

    _walk(root, 0)
    return files


def select_tools(
    profile: ProjectProfile,
    categories: Optional[CategoriesConfig] = None,
    target_urls: Iterable[str] = (),
    disabled: Iterable[str] = (),
) -> List[str]:
    """Pick adapters for a target.

    - SAST: semgrep when any supported language is present, bandit for
      Python, gosec for Go.
    - SCA (trivy) and secrets (gitleaks) always.
    - IaC (checkov) when infrastructure files were found.
    - DAST (nuclei) only when enabled and target URLs are configured.
    """
    categories = categories or CategoriesConfig()
    languages = set(profile.languages)
    tools: List[str] = []

    if categories.sast:
        if languages & SEMGREP_LANGUAGES:
            tools.append("semgrep")
        if "python" in languages:
            tools.append("bandit")
        if "go" in languages:
            tools.append("gosec")
    if categories.sca:
        tools.append("trivy")
    if categories.secrets:
        tools.append("gitleaks")
    if categories.iac and profile.has_iac:
        tools.append("checkov")
    if categories.dast:
        if list(target_urls):
            tools.append("nuclei")
        else:
            LOGGER.warning("DAST enabled but no target URLs configured, skipping nuclei")

    blocked = {name.lower() for name in disabled}
    selected = [name for name in tools if name not in blocked]
    LOGGER.info(f"Selected {len(selected)} tool(s): {', '.join(selected) or 'none'}")
    return selected
