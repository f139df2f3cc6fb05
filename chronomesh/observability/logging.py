"""
Structured Logging: JSON Lines with Query Correlation

Every facade query runs inside a `query_scope`, which tags all log lines
emitted while it is active (from any module, through plain
`logging.getLogger` loggers too) with a query id and the fields the scope
was opened with. The JSON formatter folds those fields and any `extra`
values into one object per line.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Optional, TextIO


class LogLevel(IntEnum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        """Look up a level by case-insensitive name; KeyError if unknown."""
        return cls[name.strip().upper()]


# Fields of the innermost open query scope, outermost first.
_scope: ContextVar[tuple[tuple[str, Any], ...]] = ContextVar("chronomesh_log_scope", default=())

# Attribute names of a bare LogRecord; anything else on a record came in via extra.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime"}


def scope_fields() -> dict[str, Any]:
    return dict(_scope.get())


@contextmanager
def query_scope(**fields: Any) -> Iterator[str]:
    """
    Tag log lines emitted inside the block with `fields`.

    A `query_id` is generated unless one is given, or an enclosing scope
    already set one. Yields the query id in effect.
    """
    merged = scope_fields()
    merged.update(fields)
    merged.setdefault("query_id", uuid.uuid4().hex[:16])
    token = _scope.set(tuple(merged.items()))
    try:
        yield merged["query_id"]
    finally:
        _scope.reset(token)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_scope.get())
        payload.update(
            (k, v) for k, v in vars(record).items() if k not in _STANDARD_ATTRS
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StructuredLogger:
    """
    Keyword-field front end over a stdlib logger.

    Usage:
        logger = StructuredLogger(__name__).bind(component="range")
        logger.info("Range query complete", records=12)
    """

    __slots__ = ("_logger", "_bound")

    def __init__(self, name: str, **bound: Any) -> None:
        self._logger = logging.getLogger(name)
        self._bound = bound

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields: Any) -> StructuredLogger:
        """Logger for the same name that adds `fields` to every line."""
        return StructuredLogger(self._logger.name, **{**self._bound, **fields})

    def log(self, level: int, message: str, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, extra={**self._bound, **fields})

    def debug(self, message: str, **fields: Any) -> None:
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self.log(logging.ERROR, message, **fields)


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """Route the root logger to one stream handler and return that handler."""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        JsonFormatter() if json_output
        else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(int(level))

    for noisy in ("asyncio", "redis"):
        logging.getLogger(noisy).setLevel(max(int(level), logging.WARNING))
    return handler
