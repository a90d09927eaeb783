"""Structured logging setup for the lock manager."""

import json
import logging
import sys
from typing import Optional

from distlock.core.config import get_settings

_STRUCTURED_FIELDS = (
    "namespace",
    "token",
    "lease_ms",
    "outcome",
    "elapsed_ms",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        data = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        for attr in _STRUCTURED_FIELDS:
            if hasattr(record, attr):
                data[attr] = getattr(record, attr)
        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = record.exc_info[0].__name__
        return json.dumps(data, ensure_ascii=False)


def short_token(token: Optional[str]) -> Optional[str]:
    """Return the loggable prefix of an ownership token."""
    if token is None:
        return None
    return token[:8]


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> logging.Logger:
    settings = get_settings()
    if level is None:
        level = settings.LOG_LEVEL
    if json_output is None:
        json_output = settings.LOG_JSON

    logger = logging.getLogger("distlock")
    logger.setLevel(level.upper())
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    logger.handlers = [handler]
    return logger
