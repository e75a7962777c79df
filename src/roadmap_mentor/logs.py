"""Logging setup: rich console output plus an optional JSON-lines file."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler

LOGGER_NAME = "roadmap_mentor"


def setup_logging(log_level: str | int = logging.INFO, log_file: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = RichHandler(show_path=False, rich_tracebacks=True)
    console_handler.setLevel(log_level)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)

    logger.debug("Logging initialised at %s", logging.getLevelName(log_level))
    return logger


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)
