from __future__ import annotations

import asyncio
import functools
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import ParamSpec, TypeVar

import httpx
from pydantic import ValidationError

from fortune_oracle.exceptions import (
    ModelOverloadedError,
    ProxyTransportError,
    QuotaExceededError,
    UpstreamError,
)
from fortune_oracle.models import UpstreamErrorPayload
from fortune_oracle.utils.logging import LOGGER_NAME, log_event

T = TypeVar("T")
P = ParamSpec("P")

RATE_LIMIT_STATUS = "RESOURCE_EXHAUSTED"
OVERLOAD_STATUS = "UNAVAILABLE"
# Added on top of a server-suggested delay.
RETRY_HINT_BUFFER_MS = 500

Sleep = Callable[[float], Awaitable[object]]


class FailureKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    OVERLOAD = "overload"
    TRANSPORT = "transport"
    FATAL = "fatal"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 1000

    def backoff_ms(self, *, attempt: int) -> int:
        """Exponential delay after `attempt` failed attempts (1-based)."""
        return self.initial_delay_ms * (2 ** (attempt - 1))


def extract_error_payload(exc: BaseException) -> UpstreamErrorPayload | None:
    """
    Pull the structured upstream error out of an exception.

    Proxy errors already carry a parsed payload. Anything else is accepted only
    when its message is the JSON error envelope itself.
    """

    if isinstance(exc, UpstreamError):
        if exc.payload is not None:
            if exc.payload.status is None:
                return exc.payload.model_copy(
                    update={"error": exc.payload.error.model_copy(update={"status": exc.status})}
                )
            return exc.payload
        return UpstreamErrorPayload.model_validate({"error": {"status": exc.status, "message": exc.message}})
    try:
        raw = json.loads(str(exc))
    except ValueError:
        return None
    try:
        return UpstreamErrorPayload.model_validate(raw)
    except ValidationError:
        return None


def _is_transport_failure(exc: BaseException) -> bool:
    if isinstance(exc, (ProxyTransportError, httpx.TransportError)):
        return True
    return "Failed to fetch" in str(exc)


def classify_failure(exc: BaseException) -> tuple[FailureKind, UpstreamErrorPayload | None]:
    payload = extract_error_payload(exc)
    if payload is None:
        if _is_transport_failure(exc):
            return FailureKind.TRANSPORT, None
        return FailureKind.FATAL, None
    if payload.status == RATE_LIMIT_STATUS:
        return FailureKind.RATE_LIMIT, payload
    if payload.status == OVERLOAD_STATUS:
        return FailureKind.OVERLOAD, payload
    return FailureKind.FATAL, payload


def retry_delay_ms(
    *,
    kind: FailureKind,
    attempt: int,
    policy: RetryPolicy,
    payload: UpstreamErrorPayload | None = None,
) -> int:
    delay = policy.backoff_ms(attempt=attempt)
    if kind is FailureKind.RATE_LIMIT and payload is not None:
        seconds = payload.retry_delay_seconds()
        if seconds is not None:
            delay = seconds * 1000 + RETRY_HINT_BUFFER_MS
    return delay


async def retry_call(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    logger: logging.Logger | None = None,
    sleep: Sleep | None = None,
    operation_name: str = "call",
) -> T:
    """
    Run an async operation, retrying rate-limit and overload failures.

    Every attempt calls `operation` afresh, so it must be safe to repeat.
    Transport failures surface as ModelOverloadedError without retrying; any
    other failure propagates unchanged.
    """

    policy = policy or RetryPolicy()
    logger = logger or logging.getLogger(LOGGER_NAME)
    sleep = sleep or asyncio.sleep

    attempts = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            kind, payload = classify_failure(e)
            if kind is FailureKind.TRANSPORT:
                raise ModelOverloadedError() from e
            if kind is FailureKind.FATAL:
                raise

            attempts += 1
            if attempts >= policy.max_attempts:
                if kind is FailureKind.RATE_LIMIT:
                    raise QuotaExceededError() from e
                raise ModelOverloadedError() from e

            delay = retry_delay_ms(kind=kind, attempt=attempts, policy=policy, payload=payload)
            reason = "Rate limit exceeded" if kind is FailureKind.RATE_LIMIT else "Model overloaded"
            log_event(
                logger,
                operation=operation_name,
                action="retry",
                result=kind.value,
                duration_ms=0,
                level=logging.WARNING,
                message=f"{reason}. Retrying in {delay}ms... (Attempt {attempts}/{policy.max_attempts})",
                extra_fields={"attempt": attempts, "max_attempts": policy.max_attempts, "delay_ms": delay},
            )
            await sleep(delay / 1000)


def with_retry(
    policy: RetryPolicy | None = None,
    *,
    logger: logging.Logger | None = None,
    sleep: Sleep | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Decorator form of retry_call for coroutine functions.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await retry_call(
                lambda: func(*args, **kwargs),
                policy=policy,
                logger=logger,
                sleep=sleep,
                operation_name=func.__name__,
            )

        return wrapper

    return decorator
