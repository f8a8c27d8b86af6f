"""Managed venv creation, pip health probing and bounded repair."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Sequence

from skillenv.enums import RuntimeErrorCode
from skillenv.errors import PythonRuntimeError
from skillenv.models.domain import RuntimePaths
from skillenv.observability.redaction import redact_text, sanitize
from skillenv.services.runtime.command_runner import CommandResult, CommandRunner
from skillenv.services.runtime.paths import bootstrap_candidates, get_platform_profile

logger = logging.getLogger(__name__)

REPAIR_RECREATE_VENV = "recreate_venv"
REPAIR_ENSUREPIP = "ensurepip"

WINDOWS_PIP_HINT = (
    "Make sure the Python installation includes pip and venv; "
    "if needed run `py -m ensurepip --upgrade`."
)
POSIX_PIP_HINT = (
    "Install the system venv component and retry "
    "(Debian/Ubuntu: `sudo apt install python3-venv`)."
)


def pip_unavailable_hint(platform: str | None) -> str:
    if get_platform_profile(platform).exe_suffix:
        return WINDOWS_PIP_HINT
    return POSIX_PIP_HINT


class VenvManager:
    """Brings the shared venv to a state where ``python -m pip`` works.

    Repairs are bounded: the first round recreates the venv with
    ``--clear``, later rounds run ``ensurepip``. Rounds after the first
    wait ``backoff * 2**round`` seconds.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        env: Mapping[str, str],
        platform: str | None = None,
        operation_timeout_seconds: float = 120,
        repair_attempts: int = 2,
        repair_backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.runner = runner
        self.env = env
        self.platform = platform
        self.operation_timeout_seconds = operation_timeout_seconds
        self.repair_attempts = repair_attempts
        self.repair_backoff_seconds = repair_backoff_seconds
        self._sleep = sleep

    async def run(self, command: str, args: Sequence[str], *, timeout_seconds: float | None = None) -> CommandResult:
        return await asyncio.to_thread(
            self.runner.run,
            command,
            list(args),
            timeout_seconds=timeout_seconds or self.operation_timeout_seconds,
        )

    async def create_venv(self, paths: RuntimePaths, *, clear: bool = False) -> None:
        """Create the venv, trying each bootstrap interpreter in turn."""
        args = ["-m", "venv", *(["--clear"] if clear else []), paths.venv_path]
        last_error = "no bootstrap interpreter available"
        for candidate in bootstrap_candidates(self.env, self.platform):
            try:
                result = await self.run(candidate, args)
            except PythonRuntimeError as e:
                last_error = e.message
                continue
            if not result.ok:
                last_error = result.stderr.strip() or f"exit code {result.exit_code}"
                continue
            logger.info(
                "Created managed venv at %s with %s (clear=%s, %sms)",
                paths.venv_path,
                candidate,
                clear,
                result.duration_ms,
            )
            return

        raise PythonRuntimeError(
            f"Could not create the Python virtual environment: {redact_text(last_error)}",
            code=RuntimeErrorCode.CREATE_VENV_FAILED,
            status_code=500,
            details={"venvPath": paths.venv_path, "clear": clear},
        )

    async def probe_pip(self, paths: RuntimePaths) -> CommandResult:
        """``python -m pip --version``; spawn errors count as a failed probe."""
        try:
            return await self.run(paths.python_path, ["-m", "pip", "--version"])
        except PythonRuntimeError as e:
            if e.code != RuntimeErrorCode.COMMAND_ERROR:
                raise
            return CommandResult(stdout="", stderr=e.message, exit_code=None, duration_ms=0)

    async def _repair(self, paths: RuntimePaths, round_index: int) -> dict[str, str]:
        if round_index == 0:
            try:
                await self.create_venv(paths, clear=True)
                return {"action": REPAIR_RECREATE_VENV, "result": "ok"}
            except PythonRuntimeError as e:
                return {"action": REPAIR_RECREATE_VENV, "result": e.message}

        try:
            result = await self.run(paths.python_path, ["-m", "ensurepip", "--upgrade"])
            return {"action": REPAIR_ENSUREPIP, "result": result.combined_output()}
        except PythonRuntimeError as e:
            return {"action": REPAIR_ENSUREPIP, "result": e.message}

    async def ensure_pip_available(self, paths: RuntimePaths) -> None:
        check = await self.probe_pip(paths)
        if check.ok:
            return

        initial = check.combined_output()
        repairs: list[dict[str, str]] = []
        for round_index in range(self.repair_attempts):
            if round_index > 0:
                delay = self.repair_backoff_seconds * (2**round_index)
                if delay > 0:
                    await self._sleep(delay)

            repair = await self._repair(paths, round_index)
            repairs.append(repair)
            check = await self.probe_pip(paths)
            if check.ok:
                logger.info("Recovered pip in %s via %s", paths.venv_path, repair["action"])
                return
            logger.warning(
                "Pip repair round %d (%s) failed for %s",
                round_index + 1,
                repair["action"],
                paths.venv_path,
            )

        hint = pip_unavailable_hint(self.platform)
        raise PythonRuntimeError(
            f"pip is unavailable in the managed environment after automatic repair. {hint}",
            code=RuntimeErrorCode.PIP_UNAVAILABLE,
            status_code=500,
            details=sanitize(
                {
                    "initialPipCheck": initial,
                    "repairs": repairs,
                    "finalPipCheck": check.combined_output(),
                    "hint": hint,
                }
            ),
        )

    async def ensure(self, paths: RuntimePaths) -> RuntimePaths:
        """Create the venv when missing, then make sure pip works."""
        Path(paths.runtime_root).mkdir(parents=True, exist_ok=True)
        if not Path(paths.python_path).exists():
            await self.create_venv(paths)
        await self.ensure_pip_available(paths)
        return paths
