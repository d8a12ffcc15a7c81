"""
Logging setup and per-operation correlation.

Log lines follow the "<event> | key=value key=value" convention used across
the codebase. Components that process one document at a time (publisher,
consumer) receive a base logger and bind the correlation fields for the
duration of a single operation instead of reaching for a module global.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | int = "INFO", debug: bool = False) -> None:
    """Configure the root logger once per process."""
    if debug:
        level = logging.DEBUG
    elif isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT)


class OperationLogger(logging.LoggerAdapter):
    """
    LoggerAdapter that appends the bound context to every message:

        log = bind_logger(logger, doc="d1", attempt="a1")
        log.info("Extraction done")   # -> "Extraction done | doc=d1 attempt=a1"

    The context is also attached as `record.correlation` for handlers that
    emit structured output.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        if not self.extra:
            return msg, kwargs

        context = " ".join(f"{key}={value}" for key, value in self.extra.items())
        separator = " " if " | " in str(msg) else " | "

        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("correlation", dict(self.extra))
        kwargs["extra"] = extra
        return f"{msg}{separator}{context}", kwargs

    def bind(self, **context: Any) -> "OperationLogger":
        merged = dict(self.extra or {})
        merged.update(context)
        return OperationLogger(self.logger, merged)


def bind_logger(logger: logging.Logger | OperationLogger, **context: Any) -> OperationLogger:
    """Return a logger scoped to one operation, carrying `context` on every line."""
    if isinstance(logger, OperationLogger):
        return logger.bind(**context)
    return OperationLogger(logger, context)
