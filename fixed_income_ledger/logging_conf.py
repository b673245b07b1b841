"""Logging setup shared by keepers and scenario runs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import IO, Any, Mapping, Optional, Union

__all__ = ["JSONFormatter", "configure_logging"]

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Serialise each record as one JSON object per line."""

    def __init__(self, *, default_context: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self._default_context = dict(default_context or {})

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(self._default_context)
        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(
    *,
    level: Union[int, str] = logging.INFO,
    structured: bool = False,
    stream: Optional[IO[str]] = None,
    context: Optional[Mapping[str, Any]] = None,
    logger_name: str = "fixed_income_ledger",
) -> logging.Logger:
    """Attach a single stream handler to the package logger and return it.

    Calling it again replaces the previous handler.
    """
    formatter: logging.Formatter
    if structured:
        formatter = JSONFormatter(default_context=context)
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
