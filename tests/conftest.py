from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from redis.exceptions import ConnectionError as RedisConnectionError

from http_cwm.config import RedisSettings, Settings


@pytest_asyncio.fixture
async def fake_redis() -> AsyncIterator[FakeRedis]:
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        tag="test",
        emit_backend="none",
        redis=RedisSettings(
            grace_period=300,
            flush_interval=3600,
            connect_retry_interval=0,
        ),
    )


class CollectingEmitter:
    def __init__(self) -> None:
        self.events: list[tuple[str, float, dict[str, Any]]] = []

    async def emit(self, tag: str, time: float, record: dict[str, Any]) -> None:
        self.events.append((tag, time, record))


class _FailingPipeline:
    def __init__(self, owner: UnavailableRedis) -> None:
        self._owner = owner

    def incrby(self, key: str, amount: int) -> _FailingPipeline:
        self._owner.queued.append((key, amount))
        return self

    async def execute(self) -> list[Any]:
        raise RedisConnectionError("Connection refused")


class UnavailableRedis:
    """Redis stand-in whose every command fails like a dropped connection."""

    def __init__(self) -> None:
        self.queued: list[tuple[str, int]] = []
        self.pipelines = 0

    async def ping(self) -> bool:
        raise RedisConnectionError("Connection refused")

    async def get(self, key: str) -> str | None:  # noqa: ARG002
        raise RedisConnectionError("Connection refused")

    async def set(self, key: str, value: str) -> bool:  # noqa: ARG002
        raise RedisConnectionError("Connection refused")

    def pipeline(self, transaction: bool = True) -> _FailingPipeline:  # noqa: ARG002
        self.pipelines += 1
        return _FailingPipeline(self)


@pytest.fixture
def collecting_emitter() -> CollectingEmitter:
    return CollectingEmitter()


@pytest.fixture
def unavailable_redis() -> UnavailableRedis:
    return UnavailableRedis()
