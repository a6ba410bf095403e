"""Pytest configuration and fixtures for integration tests.

These tests launch real tools and are skipped when a tool is missing.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest


def _is_docker_available() -> bool:
    """Check if Docker is available and running."""
    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False


@pytest.fixture
def requires_trivy() -> None:
    if shutil.which("trivy") is None:
        pytest.skip("trivy not on PATH")


@pytest.fixture
def requires_bandit() -> None:
    if shutil.which("bandit") is None:
        pytest.skip("bandit not on PATH")


@pytest.fixture(scope="session")
def requires_docker() -> None:
    if not _is_docker_available():
        pytest.skip("Docker not available or not running")


@pytest.fixture
def scanweave_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated scanweave home directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("SCANWEAVE_HOME", str(home))
    return home


@pytest.fixture
def insecure_project(tmp_path: Path) -> Path:
    """A tiny Python project with well-known findings for several tools."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "app.py").write_text(
        "import subprocess\n"
        "\n"
        "\n"
        "def run(cmd):\n"
        "    return subprocess.call(cmd, shell=True)\n"
        "\n"
        "\n"
        "def calc(expr):\n"
        "    return eval(expr)\n",
        encoding="utf-8",
    )
    (root / "requirements.txt").write_text("requests==2.19.1\n", encoding="utf-8")
    return root
