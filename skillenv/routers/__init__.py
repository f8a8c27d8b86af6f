"""HTTP routers package."""

from .python_runtime_router import (
    CleanupRequest,
    InstallRequest,
    UninstallRequest,
    UpdateIndexesRequest,
    create_python_runtime_router,
)

__all__ = [
    "create_python_runtime_router",
    "CleanupRequest",
    "InstallRequest",
    "UninstallRequest",
    "UpdateIndexesRequest",
]
