import re
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from http_cwm._version import __version__

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86_400}
_RESERVED_TAGS = frozenset({"health", "ready", "docs", "redoc", "openapi.json"})


def parse_duration(value: object) -> float:
    """Convert ``300``, ``"300s"``, ``"5m"``, ``"1h"`` or ``"1d"`` to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, int | float):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value.lower())
        if match is None:
            raise ValueError(f"invalid duration: {value!r}")
        number, unit = match.groups()
        seconds = float(number) * _DURATION_UNITS[unit]
    else:
        raise ValueError(f"invalid duration: {value!r}")

    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return seconds


class RedisSettings(BaseModel):
    """Redis section: connection, flush cadence and key layout."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0

    # Minimum time between two last-action writes for the same deployment.
    grace_period: float = 300.0
    flush_interval: float = 300.0

    last_update_prefix: str = "deploymentid:last_action"
    metrics_prefix: str = "deploymentid:minio-metrics"

    socket_timeout: float = 5.0
    connect_retry_interval: float = 1.0
    # None retries forever.
    connect_max_attempts: int | None = None
    flush_on_shutdown: bool = True
    # Distinct deployments that may wait for a last-action write.
    last_action_queue_size: int = 10_000

    @field_validator(
        "grace_period",
        "flush_interval",
        "socket_timeout",
        "connect_retry_interval",
        mode="before",
    )
    @classmethod
    def _parse_durations(cls, value: object) -> float:
        return parse_duration(value)

    @field_validator("flush_interval")
    @classmethod
    def _flush_interval_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("flush_interval must be greater than zero")
        return value

    @field_validator("last_action_queue_size")
    @classmethod
    def _queue_size_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("last_action_queue_size must be at least 1")
        return value

    @field_validator("connect_max_attempts")
    @classmethod
    def _max_attempts_positive(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("connect_max_attempts must be at least 1")
        return value

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}/{self.db}"


class Settings(BaseSettings):
    """
    Service configuration.

    Every option can be set through ``CWM_`` environment variables; options of
    the Redis section use a double underscore, e.g. ``CWM_REDIS__GRACE_PERIOD=10m``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CWM_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 8080
    tag: str

    debug: bool = False
    log_format: Literal["text", "json"] = "text"

    # Downstream sink for routed events.
    emit_backend: Literal["log", "redis_stream", "none"] = "log"
    emit_stream: str = "http_cwm:events"
    emit_stream_maxlen: int = 10_000

    redis: RedisSettings = RedisSettings()

    version: str = __version__

    @field_validator("tag")
    @classmethod
    def _normalize_tag(cls, value: str) -> str:
        tag = value.strip().strip("/")
        if not tag:
            raise ValueError("tag must not be empty")
        if tag in _RESERVED_TAGS:
            raise ValueError(f"tag {tag!r} collides with a built-in route")
        return tag

    @property
    def ingest_path(self) -> str:
        return f"/{self.tag}"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
