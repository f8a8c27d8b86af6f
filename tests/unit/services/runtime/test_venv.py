"""Tests for venv creation, pip probing and bounded repair."""

import pytest

from skillenv.enums import RuntimeErrorCode
from skillenv.errors import PythonRuntimeError
from skillenv.services.runtime.paths import resolve_paths
from skillenv.services.runtime.venv import POSIX_PIP_HINT, VenvManager
from tests.fakes import FakeCommandRunner, failed, ok


@pytest.fixture
def paths(tmp_path):
    return resolve_paths({"APP_DATA_DIR": str(tmp_path)}, "linux")


def _manager(runner, **kwargs) -> VenvManager:
    kwargs.setdefault("repair_backoff_seconds", 0)
    return VenvManager(runner, env={}, platform="linux", **kwargs)


async def test_creates_missing_venv_then_probes(paths):
    runner = FakeCommandRunner()
    await _manager(runner).ensure(paths)

    assert runner.calls[0] == ("python3", ["-m", "venv", paths.venv_path])
    assert runner.calls[1] == (paths.python_path, ["-m", "pip", "--version"])


async def test_falls_back_to_next_bootstrap(paths):
    runner = FakeCommandRunner()

    def by_command(command, args):
        return failed("no such interpreter") if command == "python3" else ok()

    runner.on("-m venv", by_command)
    await _manager(runner).create_venv(paths)

    assert [c for c, _ in runner.calls] == ["python3", "python"]


async def test_create_venv_failure(paths):
    runner = FakeCommandRunner()
    runner.on("-m venv", failed("venv module missing"))

    with pytest.raises(PythonRuntimeError) as exc:
        await _manager(runner).create_venv(paths)
    assert exc.value.code == RuntimeErrorCode.CREATE_VENV_FAILED


async def test_recreate_venv_repairs_pip(paths):
    runner = FakeCommandRunner()
    probes = iter([failed("No module named pip"), ok("pip 24.0")])
    runner.on("pip --version", lambda c, a: next(probes))

    await _manager(runner).ensure_pip_available(paths)

    assert ["-m", "venv", "--clear", paths.venv_path] in [a for _, a in runner.calls]
    assert not any("ensurepip" in a for _, a in runner.calls)


async def test_ensurepip_round_with_backoff(paths):
    runner = FakeCommandRunner()
    probes = iter([failed(), failed(), ok()])
    runner.on("pip --version", lambda c, a: next(probes))
    delays: list[float] = []

    async def fake_sleep(seconds: float):
        delays.append(seconds)

    manager = _manager(runner, repair_attempts=2, repair_backoff_seconds=0.5, sleep=fake_sleep)
    await manager.ensure_pip_available(paths)

    assert (paths.python_path, ["-m", "ensurepip", "--upgrade"]) in runner.calls
    assert delays == [1.0]


async def test_pip_unavailable_after_repairs(paths):
    runner = FakeCommandRunner()
    runner.on("pip --version", failed("No module named pip"))

    with pytest.raises(PythonRuntimeError) as exc:
        await _manager(runner, repair_attempts=2).ensure_pip_available(paths)

    err = exc.value
    assert err.code == RuntimeErrorCode.PIP_UNAVAILABLE
    assert err.status_code == 500
    assert err.details["initialPipCheck"] == "No module named pip"
    assert err.details["finalPipCheck"] == "No module named pip"
    assert [r["action"] for r in err.details["repairs"]] == ["recreate_venv", "ensurepip"]
    assert err.details["hint"] == POSIX_PIP_HINT
    assert len(runner.pip_calls("--version")) == 3


async def test_zero_repair_budget_fails_after_first_probe(paths):
    runner = FakeCommandRunner()
    runner.on("pip --version", failed())

    with pytest.raises(PythonRuntimeError):
        await _manager(runner, repair_attempts=0).ensure_pip_available(paths)
    assert len(runner.calls) == 1
