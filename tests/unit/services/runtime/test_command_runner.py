"""Tests for the subprocess-backed command runner.

subprocess.run is mocked so no real interpreter is spawned.
"""

import subprocess

import pytest

from skillenv.enums import RuntimeErrorCode
from skillenv.errors import PythonRuntimeError
from skillenv.services.runtime.command_runner import CommandResult, SubprocessCommandRunner


class _Proc:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_runs_with_pip_environment(monkeypatch):
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen.update(kwargs)
        return _Proc(0, stdout="pip 24.0")

    monkeypatch.setattr("subprocess.run", fake_run)

    result = SubprocessCommandRunner().run("/venv/bin/python", ["-m", "pip", "--version"], timeout_seconds=5)

    assert result.ok
    assert result.stdout == "pip 24.0"
    assert seen["cmd"] == ["/venv/bin/python", "-m", "pip", "--version"]
    assert seen["timeout"] == 5
    assert seen["capture_output"] is True
    assert seen["env"]["PIP_DISABLE_PIP_VERSION_CHECK"] == "1"
    assert seen["env"]["PIP_NO_INPUT"] == "1"


def test_output_is_truncated(monkeypatch):
    monkeypatch.setattr("subprocess.run", lambda cmd, **kw: _Proc(1, stdout="x" * 50, stderr="y" * 50))

    result = SubprocessCommandRunner(output_limit=10).run("python", [], timeout_seconds=1)

    assert result.stdout == "x" * 10
    assert result.stderr == "y" * 10
    assert result.exit_code == 1
    assert not result.ok


def test_timeout_raises_typed_error(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr("subprocess.run", fake_run)

    with pytest.raises(PythonRuntimeError) as exc:
        SubprocessCommandRunner().run("python", ["-m", "pip", "install", "numpy"], timeout_seconds=2)
    assert exc.value.code == RuntimeErrorCode.TIMEOUT
    assert exc.value.status_code == 504


def test_spawn_failure_raises_command_error(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr("subprocess.run", fake_run)

    with pytest.raises(PythonRuntimeError) as exc:
        SubprocessCommandRunner().run("/missing/python", [], timeout_seconds=2)
    assert exc.value.code == RuntimeErrorCode.COMMAND_ERROR


def test_combined_output():
    assert CommandResult("out", "err", 1, 0).combined_output() == "err\nout"
    assert CommandResult("", "", 3, 0).combined_output() == "exit code 3"
