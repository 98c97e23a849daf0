"""Logging utilities for fragment-graph.

Records carry build context as ``ctx_*`` attributes. They come either from
``extra={"ctx_...": ...}`` on a single call or from :func:`log_context`, which
tags every record emitted inside it, including records from tasks spawned
there.
"""

from __future__ import annotations

import contextvars
import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

import orjson

_DEFAULT_LEVEL = os.environ.get("FGRAPH_LOG_LEVEL", "INFO")
CONTEXT_PREFIX = "ctx_"

_context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar("fgraph_log_context", default={})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block."""
    merged = {**_context.get(), **{f"{CONTEXT_PREFIX}{key}": value for key, value in fields.items()}}
    token = _context.set(merged)
    try:
        yield
    finally:
        _context.reset(token)


class ContextFilter(logging.Filter):
    """Copy the active :func:`log_context` fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key.startswith(CONTEXT_PREFIX)}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, context fields included."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        payload.update(_context_fields(record))
        # Paths and enums in context fields fall back to str().
        return orjson.dumps(payload, default=str).decode("utf-8")


class TextFormatter(logging.Formatter):
    """Human-readable lines with context fields appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _context_fields(record)
        if not fields:
            return line
        rendered = " ".join(f"{key[len(CONTEXT_PREFIX):]}={value}" for key, value in fields.items())
        return f"{line} [{rendered}]"


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = True) -> None:
    """Send all logs to stderr so stdout stays free for command output."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if use_json else TextFormatter())
    root.handlers = [handler]


def get_logger(name: str = "fragment_graph") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = [
    "ContextFilter",
    "JsonFormatter",
    "TextFormatter",
    "configure_logging",
    "get_logger",
    "log_context",
]
