"""ASGI entry point for uvicorn.

Usage:
    uvicorn skillenv.asgi:app --host 0.0.0.0 --port 8750
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from skillenv.config import RuntimeConfig
from skillenv.logging_filters import install_uvicorn_access_log_filters
from skillenv.main import Application

_application: Application | None = None


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan for ASGI server."""
    global _application

    config = RuntimeConfig.from_json_file()
    install_uvicorn_access_log_filters()
    _application = Application(config)
    await _application.setup()
    _application.register_routers(fastapi_app)

    yield

    await _application.shutdown()
    _application = None


app = FastAPI(
    title="skillenv",
    description="Shared Python execution environment for agent skills",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
