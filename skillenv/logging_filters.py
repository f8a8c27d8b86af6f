"""Logging helpers and filters.

Applied from both entrypoints (`python -m skillenv.main` and
`uvicorn skillenv.asgi:app`).
"""

from __future__ import annotations

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SuppressHealthCheckAccessLog(logging.Filter):
    """Drop Uvicorn access log records for the health check endpoint."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        # Uvicorn access records carry
        #   (client_addr, method, full_path, http_version, status_code)
        args: Any = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2])
            if path == "/health" or path.startswith("/health?"):
                return False

        message = record.getMessage()
        if '"GET /health ' in message or '"HEAD /health ' in message:
            return False
        return True


def install_uvicorn_access_log_filters() -> None:
    """Install filters for Uvicorn loggers. Safe to call multiple times."""

    access_logger = logging.getLogger("uvicorn.access")
    for existing in access_logger.filters:
        if isinstance(existing, SuppressHealthCheckAccessLog):
            return
    access_logger.addFilter(SuppressHealthCheckAccessLog())
