"""Run Python in the managed venv, installing missing modules on the fly."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

from skillenv.enums import InstallSource
from skillenv.errors import PythonRuntimeError
from skillenv.models.domain import ScriptRunResult
from skillenv.services.runtime.command_runner import CommandResult
from skillenv.services.runtime.missing_modules import parse_missing_requirements_from_output

if TYPE_CHECKING:
    from skillenv.services.python_runtime_service import PythonRuntimeService

logger = logging.getLogger(__name__)

MIN_OUTPUT_CHARS = 256


class PythonScriptRunner:
    """Executes code or scripts with the managed interpreter.

    When a run fails on a missing module and auto-install is enabled, the
    missing requirements are installed and the run is repeated, for at most
    ``config.auto_install_max_rounds`` install rounds.
    """

    def __init__(self, service: PythonRuntimeService):
        self.service = service
        self.config = service.config

    async def run_code(
        self,
        code: str,
        *,
        stdin: str | None = None,
        timeout_seconds: float | None = None,
        max_output_chars: int | None = None,
        auto_install: bool = True,
        skill_id: int | None = None,
        version_id: int | None = None,
    ) -> ScriptRunResult:
        if not code or not code.strip():
            raise ValueError("Python code must not be empty")
        normalized = code.replace("\r\n", "\n")
        return await self._run(
            ["-c", normalized],
            stdin=stdin,
            timeout_seconds=timeout_seconds,
            max_output_chars=max_output_chars,
            auto_install=auto_install,
            skill_id=skill_id,
            version_id=version_id,
        )

    async def run_script(
        self,
        path: str | Path,
        args: list[str] | None = None,
        *,
        stdin: str | None = None,
        timeout_seconds: float | None = None,
        max_output_chars: int | None = None,
        auto_install: bool = True,
        skill_id: int | None = None,
        version_id: int | None = None,
    ) -> ScriptRunResult:
        script = Path(path).resolve()
        if not script.is_file():
            raise FileNotFoundError(f"Script not found: {script}")
        return await self._run(
            [str(script), *(args or [])],
            stdin=stdin,
            timeout_seconds=timeout_seconds,
            max_output_chars=max_output_chars,
            auto_install=auto_install,
            skill_id=skill_id,
            version_id=version_id,
            cwd=str(script.parent),
        )

    async def _attempt(
        self,
        python_path: str,
        args: list[str],
        *,
        stdin: str | None,
        timeout_seconds: float,
        cwd: str | None,
    ) -> CommandResult:
        return await asyncio.to_thread(
            self.service.runner.run,
            python_path,
            args,
            timeout_seconds=timeout_seconds,
            cwd=cwd,
            stdin=stdin,
        )

    async def _run(
        self,
        args: list[str],
        *,
        stdin: str | None,
        timeout_seconds: float | None,
        max_output_chars: int | None,
        auto_install: bool,
        skill_id: int | None,
        version_id: int | None,
        cwd: str | None = None,
    ) -> ScriptRunResult:
        timeout = timeout_seconds or self.config.script_timeout_seconds
        limit = max(MIN_OUTPUT_CHARS, max_output_chars or self.config.script_max_output_chars)
        python_path = await self.service.get_managed_python_path()

        source = InstallSource.SKILL_AUTO if skill_id is not None else InstallSource.PYTHON_AUTO
        can_auto_install = auto_install and await self.service.get_auto_install_on_missing()

        started = time.monotonic()
        auto_installed: list[str] = []
        tried: set[str] = set()
        install_failure = ""
        rounds = 0

        while True:
            result = await self._attempt(
                python_path, args, stdin=stdin, timeout_seconds=timeout, cwd=cwd
            )
            if result.ok or not can_auto_install or rounds >= self.config.auto_install_max_rounds:
                break

            requirements = [
                r
                for r in parse_missing_requirements_from_output(f"{result.stderr}\n{result.stdout}")
                if r not in tried
            ]
            if not requirements:
                break

            try:
                await self.service.install_requirements(
                    requirements, source, skill_id=skill_id, version_id=version_id
                )
            except PythonRuntimeError as e:
                install_failure = e.message
                logger.warning("Automatic dependency install failed: %s", e.message)
                break

            tried.update(requirements)
            auto_installed.extend(requirements)
            rounds += 1
            logger.info("Auto-installed %s (round %d); re-running", ", ".join(requirements), rounds)

        stderr_lines = [result.stderr.strip()] if result.stderr.strip() else []
        if install_failure:
            stderr_lines.append(f"Automatic dependency install failed: {install_failure}")
        stderr = "\n".join(stderr_lines)

        truncated = len(result.stdout) > limit or len(stderr) > limit
        return ScriptRunResult(
            stdout=result.stdout[:limit],
            stderr=stderr[:limit],
            exit_code=result.exit_code,
            duration_ms=max(0, int((time.monotonic() - started) * 1000)),
            truncated=truncated,
            auto_installed_requirements=auto_installed,
        )
