from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

import yaml
from pydantic import ValidationError

from fortune_oracle.exceptions import ConfigError
from fortune_oracle.models import ModelNames
from fortune_oracle.utils.retry import RetryPolicy


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        raise ConfigError(f"Missing required environment variable: {name}")
    return value.strip()


def _optional_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid integer for {name}: {raw}") from e
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum} (got: {value})")
    return value


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid float for {name}: {raw}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive (got: {value})")
    return value


def _optional_log_level(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    level = raw.strip().upper()
    if level not in logging.getLevelNamesMapping():
        raise ConfigError(f"Invalid log level for {name}: {raw}")
    return level


def _require_http_url(name: str) -> str:
    url = _require_env(name)
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https"):
        raise ConfigError(f"{name} must be http:// or https:// URL (got: {url})")
    if not parsed.netloc:
        raise ConfigError(f"{name} must include host (got: {url})")
    return url.rstrip("/")


@dataclass(frozen=True, slots=True)
class Settings:
    proxy_base_url: str
    request_timeout_s: float
    retry_max_attempts: int
    retry_initial_delay_ms: int
    video_poll_interval_s: float
    log_level: str

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            initial_delay_ms=self.retry_initial_delay_ms,
        )


def load_settings_from_env() -> Settings:
    return Settings(
        proxy_base_url=_require_http_url("ORACLE_PROXY_URL"),
        request_timeout_s=_optional_float("REQUEST_TIMEOUT", 60.0),
        retry_max_attempts=_optional_int("RETRY_MAX_ATTEMPTS", 3, minimum=1),
        retry_initial_delay_ms=_optional_int("RETRY_INITIAL_DELAY_MS", 1000),
        video_poll_interval_s=_optional_float("VIDEO_POLL_INTERVAL", 10.0),
        log_level=_optional_log_level("LOG_LEVEL", "INFO"),
    )


def load_model_names(*, path: str | None) -> ModelNames:
    """
    Load model name overrides from YAML; keys are ModelNames fields.
    """

    if path is None:
        return ModelNames()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Models file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in models file: {path}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("Models YAML must be a mapping (object) at top level")

    try:
        return ModelNames.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid models file {path}: {e.error_count()} error(s)") from e
