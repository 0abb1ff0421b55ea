"""
Structured JSON logging for the record store client.

Library modules log through ``logging.getLogger(__name__)``. Applications
that ship logs to a collector expecting JSON lines call
:func:`configure_structured_logging` once at startup; store failures logged
with ``exc_info`` then carry their ``kind`` and ``details`` as fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .exceptions import RecordStoreError

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Always present: ``timestamp`` (UTC, ISO 8601), ``level``, ``logger``,
    ``message``. Context passed as ``extra`` (the connection adds
    ``stream_url``) is copied in. When the logged exception is a
    :class:`RecordStoreError`, ``error_kind`` and ``error_details`` are added.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, _jsonable(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )

        if record.exc_info:
            error = record.exc_info[1]
            if isinstance(error, RecordStoreError):
                entry["error_kind"] = error.kind
                entry["error_details"] = {k: _jsonable(v) for k, v in error.details.items()}
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "realtime_record_store",
) -> logging.Logger:
    """
    Route a logger's output to stdout as JSON lines.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: this package's logger;
            None for the root logger)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


class StoreLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds fixed context to every message.

    The connection uses it to tag its records with the stream URL.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs
