"""Logging configuration for gamevault.

JSON lines in production, a plain single-line format everywhere else.
"""

import json
import logging
from datetime import datetime, timezone

LOGGER_NAME = "gamevault"

_HANDLER_ATTR = "_gamevault_handler"


def _format_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _format_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PlainFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = f"{_format_timestamp(record)} {record.levelname} [{record.name}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(level: str = "INFO", env: str = "development") -> logging.Logger:
    """Configure the package logger.

    Safe to call more than once: the handler installed by a previous call
    is replaced rather than duplicated.

    Args:
        level: Level name such as ``INFO`` or ``DEBUG``; unknown names fall back to INFO
        env: ``production`` selects JSON output

    Returns:
        The configured ``gamevault`` logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    resolved = logging.getLevelName(str(level).upper())
    known = isinstance(resolved, int)
    logger.setLevel(resolved if known else logging.INFO)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if env == "production" else PlainFormatter())
    setattr(handler, _HANDLER_ATTR, True)
    logger.addHandler(handler)
    logger.propagate = False

    if not known:
        logger.warning("Unknown log level %r, using INFO", level)

    return logger
