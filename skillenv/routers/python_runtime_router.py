"""Python runtime API endpoints.

Routers handle HTTP concerns only - no business logic.
All business logic is delegated to PythonRuntimeService.
"""

from typing import TYPE_CHECKING, Any, Awaitable

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import Field

from skillenv.enums import InstallSource
from skillenv.errors import PythonRuntimeError
from skillenv.models.base import JsonModel

if TYPE_CHECKING:
    from skillenv.services.python_runtime_service import PythonRuntimeService


class UpdateIndexesRequest(JsonModel):
    """Only fields present in the body are written."""

    index_url: str | None = None
    extra_index_urls: list[str] | None = None
    trusted_hosts: list[str] | None = None
    auto_install_on_activate: bool | None = None
    auto_install_on_missing: bool | None = None


class InstallRequest(JsonModel):
    requirements: list[str] = Field(default_factory=list)
    source: InstallSource = InstallSource.MANUAL
    skill_id: int | None = None
    version_id: int | None = None


class UninstallRequest(JsonModel):
    packages: list[str] = Field(default_factory=list)


class CleanupRequest(JsonModel):
    removed_requirements: list[str] = Field(default_factory=list)
    exclude_skill_ids: list[int] = Field(default_factory=list)


def _success(data: Any) -> JSONResponse:
    if isinstance(data, JsonModel):
        data = data.model_dump(by_alias=True)
    return JSONResponse({"success": True, "data": data})


def _failure(error: PythonRuntimeError) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": error.message, "data": error.to_dict()},
        status_code=error.status_code,
    )


async def _respond(call: Awaitable[Any]) -> JSONResponse:
    try:
        return _success(await call)
    except PythonRuntimeError as e:
        return _failure(e)


def create_python_runtime_router(runtime_service: "PythonRuntimeService") -> APIRouter:
    """Create the runtime router with injected service.

    Args:
        runtime_service: PythonRuntimeService instance for business logic

    Returns:
        APIRouter mounted under ``/api/python-runtime``
    """
    router = APIRouter(prefix="/api/python-runtime", tags=["python-runtime"])

    @router.get("")
    async def get_status() -> JSONResponse:
        return await _respond(runtime_service.get_runtime_status())

    @router.get("/indexes")
    async def get_indexes() -> JSONResponse:
        return await _respond(runtime_service.get_indexes())

    @router.put("/indexes")
    async def update_indexes(request: UpdateIndexesRequest) -> JSONResponse:
        fields = {name: getattr(request, name) for name in request.model_fields_set}
        return await _respond(runtime_service.update_indexes(**fields))

    @router.post("/install")
    async def install(request: InstallRequest) -> JSONResponse:
        return await _respond(
            runtime_service.install_requirements(
                request.requirements,
                request.source,
                skill_id=request.skill_id,
                version_id=request.version_id,
            )
        )

    @router.post("/uninstall")
    async def uninstall(request: UninstallRequest) -> JSONResponse:
        return await _respond(runtime_service.uninstall_packages(request.packages))

    @router.post("/reconcile")
    async def reconcile() -> JSONResponse:
        return await _respond(runtime_service.reconcile())

    @router.post("/cleanup/preview")
    async def preview_cleanup(request: CleanupRequest) -> JSONResponse:
        return await _respond(
            runtime_service.preview_cleanup_after_skill_removal(
                request.removed_requirements,
                request.exclude_skill_ids,
            )
        )

    @router.post("/cleanup")
    async def cleanup(request: CleanupRequest) -> JSONResponse:
        return await _respond(
            runtime_service.cleanup_packages_after_skill_removal(
                request.removed_requirements,
                request.exclude_skill_ids,
            )
        )

    return router
