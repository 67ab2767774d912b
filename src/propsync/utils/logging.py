"""Structured logging configuration.

Sync events are logged with the user, workspace and document they concern.
Pass them through ``extra=`` (or bind them once with ``bind_context``) and
both formatters render them next to the message.
"""

import logging
import json
import sys
from typing import Any, Dict, MutableMapping, Tuple

from ..config.settings import settings

# Attributes lifted from ``extra=`` into the rendered record, in this order
CONTEXT_FIELDS: Tuple[str, ...] = (
    "user_id",
    "workspace_id",
    "collection",
    "document_id",
    "request_id",
)


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) not in (None, "")
    }


class JSONFormatter(logging.Formatter):
    """Format logs as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(record_context(record))
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class ContextTextFormatter(logging.Formatter):
    """Plain text lines with ``key=value`` context appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges bound context into every call's ``extra``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def bind_context(logger: logging.Logger, **context: Any) -> ContextAdapter:
    """Return a logger that tags every record with ``context``.

    Example:
        >>> log = bind_context(get_logger(__name__), user_id="u1")
        >>> log.info("Resolving workspace", extra={"workspace_id": "w1"})
    """
    return ContextAdapter(logger, {k: v for k, v in context.items() if k in CONTEXT_FIELDS})


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if settings.log_format == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(ContextTextFormatter())
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
