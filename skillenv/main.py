"""Application wiring and entry point.

Creates the database, DAOs, runtime service and FastAPI app, and runs the
API with uvicorn.
"""

import asyncio
import logging
import sys

from fastapi import FastAPI

from skillenv.config import RuntimeConfig
from skillenv.dao import SettingsDAO, SkillDAO
from skillenv.database import Database
from skillenv.logging_filters import LOG_FORMAT, install_uvicorn_access_log_filters
from skillenv.routers import create_python_runtime_router
from skillenv.services import PythonRuntimeService, PythonScriptRunner
from skillenv.services.runtime.command_runner import CommandRunner

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


class Application:
    """Main application container.

    Owns the component graph and its lifecycle.
    """

    def __init__(self, config: RuntimeConfig, *, runner: CommandRunner | None = None) -> None:
        self.config = config
        self._runner = runner

        self.database: Database | None = None
        self.settings_dao: SettingsDAO | None = None
        self.skill_dao: SkillDAO | None = None
        self.runtime_service: PythonRuntimeService | None = None
        self.script_runner: PythonScriptRunner | None = None

    async def setup(self) -> None:
        logger.info("Setting up application components...")

        self.database = Database(self.config.database_url)
        if self.config.auto_create_tables:
            await self.database.init_db()
            logger.info("Database initialized (auto_create_tables=true)")
        else:
            logger.info("Database initialized (auto_create_tables=false)")

        self.settings_dao = SettingsDAO(self.database)
        self.skill_dao = SkillDAO(self.database)

        self.runtime_service = PythonRuntimeService(
            self.config,
            self.settings_dao,
            self.skill_dao,
            self._runner,
        )
        self.script_runner = PythonScriptRunner(self.runtime_service)
        logger.info(
            "Python runtime service initialized (venv=%s)",
            self.runtime_service.resolve_paths().venv_path,
        )

    def register_routers(self, fastapi_app: FastAPI) -> None:
        if self.runtime_service is None:
            raise RuntimeError("Application.setup() must run before registering routers")
        fastapi_app.include_router(create_python_runtime_router(self.runtime_service))

    async def shutdown(self) -> None:
        logger.info("Shutting down...")
        if self.database:
            await self.database.close()
            self.database = None


async def main(reload: bool = False) -> None:
    """Run the API server until interrupted."""
    import uvicorn

    config = RuntimeConfig.from_json_file()
    logger.info("Configuration loaded")

    uvicorn_config = uvicorn.Config(
        "skillenv.asgi:app",
        host=config.api_host,
        port=config.api_port,
        log_level="info",
        reload=reload,
    )
    uvicorn_config.load()
    install_uvicorn_access_log_filters()

    server = uvicorn.Server(uvicorn_config)
    await server.serve()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Run the skill Python runtime API")
    parser.add_argument("--reload", action="store_true", help="Enable hot reload")
    args = parser.parse_args()

    asyncio.run(main(reload=args.reload))
