"""Process-wide logging setup: plain text in development, JSON lines elsewhere."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

from app.config import get_settings

APP_LOGGER_NAME = "portal_chat"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class LoggingConfig:
    """Configure the root logger once; later instantiations are no-ops."""

    _configured = False

    def __init__(self, log_level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
        if LoggingConfig._configured:
            return
        settings = get_settings()
        level = (log_level or settings.log_level).upper()
        if json_output is None:
            json_output = settings.environment.lower() != "development"

        handler = logging.StreamHandler(sys.stdout)
        if json_output:
            handler.setFormatter(
                JsonFormatter(
                    JSON_FORMAT,
                    rename_fields={"levelname": "level", "asctime": "ts"},
                )
            )
        else:
            handler.setFormatter(logging.Formatter(TEXT_FORMAT))

        root = logging.getLogger()
        root.setLevel(level)
        root.handlers = [handler]

        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            uvicorn_logger = logging.getLogger(name)
            uvicorn_logger.handlers = [handler]
            uvicorn_logger.propagate = False

        # SQL echo is far too chatty at INFO
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        LoggingConfig._configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger(APP_LOGGER_NAME)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
