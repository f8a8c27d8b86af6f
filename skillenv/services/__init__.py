"""Business logic services package."""

from .python_runtime_service import PythonRuntimeService, get_runtime_lock
from .runtime.script_runner import PythonScriptRunner

__all__ = [
    "PythonRuntimeService",
    "PythonScriptRunner",
    "get_runtime_lock",
]
