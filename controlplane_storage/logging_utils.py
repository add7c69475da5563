"""
Structured JSON logging for the document store.

Log calls in this package carry their storage context in ``extra``: the
database, the container, the document key, the operation and, for update
retries, the attempt number. The formatter collects those fields under a
single ``storage`` object so log queries can filter on ``storage.container``
or ``storage.key``, and renders store errors together with their details.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .exceptions import DocumentStoreError

PACKAGE_LOGGER = "controlplane_storage"

# Fields grouped under "storage" in formatted output
STORAGE_CONTEXT_FIELDS = frozenset(
    {"database", "container", "kind", "key", "operation", "attempt", "attempts"}
)

# Attributes every LogRecord carries; anything else came from `extra`.
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message", "asctime",
    }
)


def _render_error(error: BaseException) -> dict[str, Any]:
    rendered: dict[str, Any] = {"type": type(error).__name__, "message": str(error)}
    if isinstance(error, DocumentStoreError):
        rendered["message"] = error.message
        rendered["details"] = error.details
    return rendered


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON:

        {"timestamp": ..., "level": "WARNING", "logger": "controlplane_storage.database.update",
         "message": "...", "storage": {"container": "Resources", "key": "...", "attempt": 5}}

    Exception values passed in ``extra`` (e.g. ``error=e``) become
    ``{"type", "message", "details"}`` objects.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        storage: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            if isinstance(value, BaseException):
                value = _render_error(value)
            if key in STORAGE_CONTEXT_FIELDS:
                storage[key] = value
            else:
                log_obj[key] = value

        if storage:
            log_obj["storage"] = storage

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Send this package's logs to stdout as structured JSON.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger;
            None configures the root logger)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


class StorageLoggerAdapter(logging.LoggerAdapter):
    """
    Logger bound to a storage context.

    The bound fields are added to every record; fields passed in ``extra``
    at the call site take precedence.

        log = StorageLoggerAdapter(logger, database="controlplane")
        log.bind(container="Resources").debug("Created", extra={"key": key})
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, context)

    def bind(self, **context: Any) -> "StorageLoggerAdapter":
        """Return an adapter with additional context fields."""
        return StorageLoggerAdapter(self.logger, **{**(self.extra or {}), **context})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs
