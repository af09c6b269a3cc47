"""Downstream sinks for routed events.

An emitter receives ``(tag, time, record)`` for every accepted event, where
``record`` is ``{"message": <parsed payload>}``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from redis.exceptions import RedisError

from http_cwm.config import Settings

logger = logging.getLogger(__name__)

ROUTED_LOGGER_NAME = "http_cwm.routed"


class EventEmitter(Protocol):
    async def emit(self, tag: str, time: float, record: dict[str, Any]) -> None: ...


class LogEmitter:
    """Writes one JSON line per routed event to a dedicated logger."""

    def __init__(self, logger_name: str = ROUTED_LOGGER_NAME) -> None:
        self._logger = logging.getLogger(logger_name)

    async def emit(self, tag: str, time: float, record: dict[str, Any]) -> None:
        self._logger.info(
            json.dumps({"tag": tag, "time": time, "record": record}, default=str)
        )


class RedisStreamEmitter:
    """Appends routed events to a capped Redis stream."""

    def __init__(self, redis_client: Any, stream: str, *, maxlen: int = 10_000) -> None:
        self._redis = redis_client
        self._stream = stream
        self._maxlen = max(maxlen, 100)

    async def emit(self, tag: str, time: float, record: dict[str, Any]) -> None:
        fields = {
            "tag": tag,
            "time": repr(time),
            "data": json.dumps(record, default=str),
        }
        try:
            await self._redis.xadd(
                self._stream, fields, maxlen=self._maxlen, approximate=True
            )
        except (RedisError, OSError) as exc:
            logger.error("Unable to route event to stream %s! ERROR: '%s'", self._stream, exc)


class NullEmitter:
    async def emit(self, tag: str, time: float, record: dict[str, Any]) -> None:
        return None


def build_emitter(settings: Settings, redis_client: Any) -> EventEmitter:
    if settings.emit_backend == "redis_stream":
        return RedisStreamEmitter(
            redis_client, settings.emit_stream, maxlen=settings.emit_stream_maxlen
        )
    if settings.emit_backend == "none":
        return NullEmitter()
    return LogEmitter()
