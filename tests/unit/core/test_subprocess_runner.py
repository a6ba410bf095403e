"""Tests for the subprocess execution engine.

These run real child processes using the current Python interpreter,
which is added to the runner's allowlist.
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

from scanweave.core.exceptions import CommandNotAllowedError, ToolUnavailableError
from scanweave.core.streaming import CollectingStreamHandler, ProgressEventType
from scanweave.core.subprocess_runner import (
    ALLOWED_COMMANDS,
    TRUNCATION_MARKER,
    ProcessRunner,
    ToolInvocation,
    command_name,
)

PYTHON = sys.executable
PYTHON_NAME = command_name(PYTHON)


def _runner(**kwargs) -> ProcessRunner:
    return ProcessRunner(allowed_commands=ALLOWED_COMMANDS | {PYTHON_NAME}, **kwargs)


def _script(tmp_path: Path, name: str, body: str) -> Path:
    path = tmp_path / name
    path.write_text(body, encoding="utf-8")
    return path


class TestCommandName:
    """Tests for command_name."""

    def test_strips_directory(self) -> None:
        """Paths reduce to the executable name."""
        assert command_name("/usr/local/bin/trivy") == "trivy"

    def test_strips_exe_suffix(self) -> None:
        """Windows executables lose their suffix."""
        assert command_name("C:/tools/gitleaks.exe") == "gitleaks"


class TestValidation:
    """Tests for command and argument validation."""

    def test_rejects_unknown_command(self) -> None:
        """Commands outside the allowlist are refused."""
        with pytest.raises(CommandNotAllowedError):
            ProcessRunner().validate(["rm", "-rf", "/"])

    def test_rejects_empty_argv(self) -> None:
        """An empty argument vector is refused."""
        with pytest.raises(CommandNotAllowedError):
            ProcessRunner().validate([])

    def test_rejects_shell_metacharacters(self) -> None:
        """Arguments with shell metacharacters are refused."""
        with pytest.raises(CommandNotAllowedError):
            ProcessRunner().validate(["trivy", "fs", "; rm -rf /"])

    def test_docker_templates_allowed(self) -> None:
        """Docker format templates contain braces and are accepted."""
        ProcessRunner().validate(["docker", "ps", "--format", "{{.Status}}"])

    def test_plain_arguments_allowed(self) -> None:
        """Ordinary flags and paths pass."""
        ProcessRunner().validate(["semgrep", "scan", "--sarif", "--output", "/tmp/out.sarif"])


class TestRun:
    """Tests for ProcessRunner.run with real processes."""

    def test_captures_output_and_exit_code(self, tmp_path: Path) -> None:
        """Stdout, stderr and the exit code are captured."""
        script = _script(
            tmp_path,
            "emit.py",
            "import sys\nprint('hello')\nprint('oops', file=sys.stderr)\nsys.exit(3)\n",
        )
        result = _runner().run(ToolInvocation("fake", [PYTHON, str(script)], cwd=tmp_path))
        assert result.exit_code == 3
        assert result.stdout == "hello"
        assert result.stderr == "oops"
        assert result.timed_out is False

    def test_env_overrides_passed(self, tmp_path: Path) -> None:
        """Environment overrides reach the child process."""
        script = _script(tmp_path, "env.py", "import os\nprint(os.environ['SCANWEAVE_TEST'])\n")
        result = _runner().run(
            ToolInvocation("fake", [PYTHON, str(script)], cwd=tmp_path, env={"SCANWEAVE_TEST": "yes"})
        )
        assert result.stdout == "yes"

    def test_artifact_path_kept_when_written(self, tmp_path: Path) -> None:
        """An artifact the tool wrote is referenced by the result."""
        artifact = tmp_path / "out.json"
        script = _script(tmp_path, "write.py", f"open({str(artifact)!r}, 'w').write('[]')\n")
        result = _runner().run(
            ToolInvocation("fake", [PYTHON, str(script)], cwd=tmp_path, artifact_path=artifact)
        )
        assert result.artifact_path == artifact

    def test_missing_artifact_is_none(self, tmp_path: Path) -> None:
        """A missing artifact is reported as None, never raised."""
        script = _script(tmp_path, "noop.py", "pass\n")
        result = _runner().run(
            ToolInvocation("fake", [PYTHON, str(script)], cwd=tmp_path, artifact_path=tmp_path / "nope")
        )
        assert result.artifact_path is None

    def test_timeout_terminates_process(self, tmp_path: Path) -> None:
        """A process over its budget is killed and marked timed out."""
        script = _script(tmp_path, "sleep.py", "import time\nprint('started', flush=True)\ntime.sleep(30)\n")
        start = time.monotonic()
        result = _runner(kill_grace=1).run(
            ToolInvocation("fake", [PYTHON, str(script)], cwd=tmp_path, timeout=0.5)
        )
        assert result.timed_out is True
        assert time.monotonic() - start < 10
        assert "started" in result.stdout

    def test_output_truncated_at_limit(self, tmp_path: Path) -> None:
        """Output beyond the byte budget is dropped with a marker."""
        script = _script(tmp_path, "flood.py", "for i in range(1000):\n    print('x' * 50)\n")
        result = _runner(output_limit=500).run(ToolInvocation("fake", [PYTHON, str(script)], cwd=tmp_path))
        assert result.stdout.endswith(TRUNCATION_MARKER)
        assert len(result.stdout) < 1000

    def test_lines_streamed_to_handler(self, tmp_path: Path) -> None:
        """Each output line becomes a scanner_log event."""
        script = _script(tmp_path, "lines.py", "print('one')\nprint('two')\n")
        handler = CollectingStreamHandler()
        _runner().run(
            ToolInvocation(
                "fake",
                [PYTHON, str(script)],
                cwd=tmp_path,
                scan_id="scan-1",
                stream_handler=handler,
            )
        )
        messages = [e.message for e in handler.of_type(ProgressEventType.SCANNER_LOG)]
        assert messages == ["one", "two"]

    def test_missing_executable_raises(self, tmp_path: Path) -> None:
        """An allowlisted but absent executable raises ToolUnavailableError."""
        runner = ProcessRunner(allowed_commands={"definitely-not-installed-tool"})
        with pytest.raises(ToolUnavailableError):
            runner.run(ToolInvocation("fake", ["definitely-not-installed-tool"], cwd=tmp_path))


class TestKillScan:
    """Tests for per-scan cancellation of processes."""

    def test_kill_scan_terminates_running_process(self, tmp_path: Path) -> None:
        """kill_scan stops every in-flight process of the scan."""
        script = _script(tmp_path, "sleep.py", "import time\ntime.sleep(30)\n")
        runner = _runner(kill_grace=1)
        results = []

        thread = threading.Thread(
            target=lambda: results.append(
                runner.run(ToolInvocation("fake", [PYTHON, str(script)], cwd=tmp_path, scan_id="scan-k"))
            )
        )
        thread.start()
        deadline = time.monotonic() + 10
        while runner.active_processes("scan-k") == 0 and time.monotonic() < deadline:
            time.sleep(0.05)

        assert runner.kill_scan("scan-k") == 1
        thread.join(timeout=10)
        assert not thread.is_alive()
        assert results[0].exit_code != 0
        assert runner.active_processes("scan-k") == 0

    def test_kill_unknown_scan_is_noop(self) -> None:
        """Killing a scan with no processes signals nothing."""
        assert ProcessRunner().kill_scan("nothing-here") == 0


class TestVersionProbe:
    """Tests for get_command_version."""

    def test_extracts_version(self, tmp_path: Path) -> None:
        """The first dotted number of the output is the version."""
        script = _script(tmp_path, "version.py", "print('tool version 1.56.0 (build abc)')\n")
        assert _runner().get_command_version([PYTHON, str(script)]) == "1.56.0"

    def test_unavailable_command_returns_none(self) -> None:
        """Disallowed commands yield None rather than raising."""
        assert ProcessRunner().get_command_version(["not-allowed", "--version"]) is None
