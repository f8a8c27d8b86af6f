"""Runtime error type shared by services and routers."""

from __future__ import annotations

from typing import Any

from skillenv.enums import RuntimeErrorCode


class PythonRuntimeError(Exception):
    """Error raised by the managed Python runtime.

    Carries an API-facing ``code`` and HTTP ``status_code`` so routers can
    turn it into a response without inspecting the message.
    """

    def __init__(
        self,
        message: str,
        *,
        code: RuntimeErrorCode,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": str(self.code),
            "statusCode": self.status_code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"PythonRuntimeError(code={self.code!s}, status_code={self.status_code})"


# Codes raised while bringing the venv up. Status reads report these as a
# degraded runtime instead of failing.
DEGRADED_RUNTIME_CODES = frozenset(
    {
        RuntimeErrorCode.PIP_UNAVAILABLE,
        RuntimeErrorCode.CREATE_VENV_FAILED,
        RuntimeErrorCode.COMMAND_ERROR,
        RuntimeErrorCode.TIMEOUT,
    }
)
