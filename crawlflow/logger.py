from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

ROOT_LOGGER_NAME = "crawlflow"


class PlainFormatter(logging.Formatter):
    """[ Sat Oct 17 09:41:02 PM UTC 2026 ] : INFO : crawlflow.scheduler : message"""

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        line = f"[ {timestamp} ] : {record.levelname} : {record.name} : {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> logging.Logger:
    """Configure the package root logger; module loggers propagate to it.

    Calling it again only adjusts the level, so handlers are never duplicated.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter: logging.Formatter = JsonFormatter() if json_format else PlainFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
