"""Structured JSON logging for the LevelUp API."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, TextIO

from loguru import logger


# Context keys lifted to the top level so order and member events are searchable
PROMOTED_KEYS = ("order_id", "user_id", "collection", "collections", "kind")

_STANDARD_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}


class JsonLogSink:
    """Loguru sink writing one JSON document per line.

    Domain identifiers from ``PROMOTED_KEYS`` sit beside the service fields;
    any other bound value goes under ``context``.
    """

    def __init__(self, *, service_name: str, environment: str, version: str, stream: TextIO | None = None) -> None:
        self._service_fields = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream

    def __call__(self, message: "logger.Message") -> None:
        record = message.record
        payload: dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **self._service_fields,
        }

        context = dict(record["extra"])
        for key in PROMOTED_KEYS:
            if key in context:
                payload[key] = context.pop(key)
        if context:
            payload["context"] = context
        if record["exception"] is not None:
            payload["exception"] = repr(record["exception"].value)

        # Resolved per call so a replaced sys.stdout is honoured
        stream = self._stream or sys.stdout
        stream.write(json.dumps(payload, default=str) + "\n")
        stream.flush()


class InterceptHandler(logging.Handler):
    """Route uvicorn, SQLAlchemy and httpx records into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_ATTRS}

        # Skip the logging module frames so Loguru reports the original caller
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(**extra).opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Send Loguru and stdlib logging through one JSON sink."""

    logger.remove()
    logger.add(
        JsonLogSink(service_name=service_name, environment=environment, version=version, stream=stream),
        level=level.upper(),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("uvicorn.access", "httpx", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
