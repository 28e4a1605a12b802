from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fortune_oracle.models import UpstreamErrorPayload

QUOTA_EXCEEDED_MESSAGE = "API quota exceeded. Please check your plan and billing details or try again later."
MODEL_OVERLOADED_MESSAGE = "The model is currently overloaded. Please try again later."


class ExitCode(IntEnum):
    CONFIG = 1
    QUOTA_EXCEEDED = 2
    MODEL_OVERLOADED = 3
    UPSTREAM = 4
    UNEXPECTED = 5


class OracleError(Exception):
    """Base exception for controlled failures."""


class ConfigError(OracleError):
    """Configuration file or environment is invalid."""


class UpstreamError(OracleError):
    """The proxy answered with a non-2xx response."""

    def __init__(
        self,
        *,
        status: str,
        message: str,
        http_status: int | None = None,
        payload: UpstreamErrorPayload | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.http_status = http_status
        self.payload = payload

    def __str__(self) -> str:
        if self.http_status is None:
            return f"{self.status}: {self.message}"
        return f"HTTP {self.http_status} {self.status}: {self.message}"


class ProxyTransportError(OracleError):
    """The proxy could not be reached at all."""


class QuotaExceededError(OracleError):
    def __init__(self, message: str = QUOTA_EXCEEDED_MESSAGE) -> None:
        super().__init__(message)


class ModelOverloadedError(OracleError):
    def __init__(self, message: str = MODEL_OVERLOADED_MESSAGE) -> None:
        super().__init__(message)


class ImagenBillingRequiredError(OracleError):
    def __init__(self, message: str = "IMAGEN_BILLING_REQUIRED") -> None:
        super().__init__(message)


class VideoUnavailableError(OracleError):
    def __init__(self, message: str = "Video generation completed, but no download link was found.") -> None:
        super().__init__(message)


def exit_code_for_error(exc: BaseException) -> int:
    """
    Map a terminal failure to the process exit code.
    """

    if isinstance(exc, ConfigError):
        return int(ExitCode.CONFIG)
    if isinstance(exc, QuotaExceededError):
        return int(ExitCode.QUOTA_EXCEEDED)
    if isinstance(exc, ModelOverloadedError):
        return int(ExitCode.MODEL_OVERLOADED)
    if isinstance(exc, OracleError):
        return int(ExitCode.UPSTREAM)
    return int(ExitCode.UNEXPECTED)
