"""Application logging with Loguru."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from loguru import logger

from app.settings import Settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line} | {message}"

_configured = False


class InterceptHandler(logging.Handler):
    """Redirect stdlib logs (httpx, uvicorn) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _normalize_level(value: str | None) -> str:
    level = (value or "INFO").strip().upper()
    level = {"WARN": "WARNING", "FATAL": "CRITICAL"}.get(level, level)
    if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
        return "INFO"
    return level


def configure_logging(settings: Settings, *, stream: TextIO = sys.stdout) -> None:
    global _configured
    if _configured:
        return
    _configured = True

    level = _normalize_level(settings.log_level)

    logger.remove()
    logger.configure(extra={"name": "disaster-intel"})
    logger.add(
        stream,
        level=level,
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=False,
    )
    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            level=level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


def get_logger(name: str):
    return logger.bind(name=name)
