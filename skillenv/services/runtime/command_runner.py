"""Subprocess capability used for every python/pip invocation."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

from skillenv.enums import RuntimeErrorCode
from skillenv.errors import PythonRuntimeError
from skillenv.observability.redaction import redact_text

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_LIMIT = 200_000

PIP_ENV = {
    "PIP_DISABLE_PIP_VERSION_CHECK": "1",
    "PIP_NO_INPUT": "1",
    "PYTHONIOENCODING": "utf-8",
}


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int | None
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def combined_output(self) -> str:
        """``stderr`` then ``stdout``, or the exit code when both are empty."""
        output = f"{self.stderr}\n{self.stdout}".strip()
        return output or f"exit code {self.exit_code}"


class CommandRunner(Protocol):
    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        timeout_seconds: float,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> CommandResult: ...


def _truncate(text: str | bytes | None, limit: int) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text[:limit]


class SubprocessCommandRunner:
    """Blocking ``subprocess.run`` runner.

    Timeouts raise ``PYTHON_RUNTIME_TIMEOUT`` and spawn failures raise
    ``PYTHON_RUNTIME_COMMAND_ERROR``; a non-zero exit is returned, not
    raised.
    """

    def __init__(self, *, output_limit: int = DEFAULT_OUTPUT_LIMIT):
        self.output_limit = output_limit

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        timeout_seconds: float,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> CommandResult:
        child_env = os.environ.copy()
        if env:
            child_env.update(env)
        child_env.update(PIP_ENV)

        argv = [command, *args]
        started = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                cwd=cwd,
                env=child_env,
                input=stdin,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise PythonRuntimeError(
                f"Command timed out after {timeout_seconds}s",
                code=RuntimeErrorCode.TIMEOUT,
                status_code=504,
                details={
                    "command": redact_text(command),
                    "args": [redact_text(a) for a in args],
                    "stdout": redact_text(_truncate(e.stdout, self.output_limit)),
                    "stderr": redact_text(_truncate(e.stderr, self.output_limit)),
                },
            ) from e
        except OSError as e:
            raise PythonRuntimeError(
                f"Command failed to start: {e}",
                code=RuntimeErrorCode.COMMAND_ERROR,
                status_code=500,
                details={"command": redact_text(command), "args": [redact_text(a) for a in args]},
            ) from e

        duration_ms = max(0, int((time.monotonic() - started) * 1000))
        logger.debug(
            "Command finished: %s (exit=%s, %sms)",
            redact_text(" ".join(argv)),
            proc.returncode,
            duration_ms,
        )
        return CommandResult(
            stdout=_truncate(proc.stdout, self.output_limit),
            stderr=_truncate(proc.stderr, self.output_limit),
            exit_code=proc.returncode,
            duration_ms=duration_ms,
        )
