from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass
from typing import IO, Any

LOGGER_NAME = "fortune_oracle"

# Event attributes every JSON line carries, with the value used when a record lacks them.
EVENT_DEFAULTS: dict[str, Any] = {
    "operation": "global",
    "action": "log",
    "result": "info",
    "duration_ms": 0,
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; prompts and media never reach the extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, default in EVENT_DEFAULTS.items():
            payload[key] = getattr(record, key, default)
        payload.update(
            (k, v) for k, v in (getattr(record, "extra_fields", None) or {}).items() if k not in payload
        )
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_logging(*, level: str, stream: IO[str] | None = None) -> logging.Logger:
    """
    Set up the package logger once; later calls only change the level.

    Output defaults to stderr so stdout carries nothing but command results.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    if not logger.handlers:
        handler = logging.StreamHandler(stream=stream or sys.stderr)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    return logger


@dataclass(frozen=True, slots=True)
class Timer:
    start: float

    @staticmethod
    def start_now() -> "Timer":
        return Timer(start=time.monotonic())

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)


def log_event(
    logger: logging.Logger,
    *,
    operation: str,
    action: str,
    result: str,
    duration_ms: int,
    level: int = logging.INFO,
    message: str = "",
    extra_fields: dict[str, Any] | None = None,
) -> None:
    if not logger.isEnabledFor(level):
        return
    logger.log(
        level,
        message,
        extra={
            "operation": operation,
            "action": action,
            "result": result,
            "duration_ms": duration_ms,
            "extra_fields": extra_fields or {},
        },
    )
