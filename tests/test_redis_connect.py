from __future__ import annotations

import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

import http_cwm.services.redis as redis_module
from http_cwm.config import RedisSettings
from http_cwm.services.redis import (
    StoreConnectError,
    close_redis,
    connect_redis,
    create_client,
    wait_for_redis,
)


class _FlakyRedis:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.pings = 0
        self.closed = False

    async def ping(self) -> bool:
        self.pings += 1
        if self.pings <= self.failures:
            raise RedisConnectionError("Connection refused")
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_singleton():
    redis_module._redis_client = None  # type: ignore[attr-defined]
    yield
    redis_module._redis_client = None  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_wait_for_redis_retries_until_ping_succeeds(caplog) -> None:
    client = _FlakyRedis(failures=2)

    with caplog.at_level(logging.ERROR, logger="http_cwm.services.redis"):
        attempts = await wait_for_redis(client, retry_interval=0)

    assert attempts == 3
    assert client.pings == 3
    assert caplog.text.count("Unable to connect to Redis server") == 2


@pytest.mark.asyncio
async def test_wait_for_redis_sleeps_between_attempts(monkeypatch) -> None:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    monkeypatch.setattr(redis_module.asyncio, "sleep", fake_sleep)

    await wait_for_redis(_FlakyRedis(failures=3), retry_interval=1.0)

    assert sleeps == [1.0, 1.0, 1.0]


@pytest.mark.asyncio
async def test_wait_for_redis_gives_up_after_max_attempts() -> None:
    client = _FlakyRedis(failures=10)

    with pytest.raises(StoreConnectError):
        await wait_for_redis(client, retry_interval=0, max_attempts=2)

    assert client.pings == 2


@pytest.mark.asyncio
async def test_connect_redis_keeps_singleton_and_close_releases_it(monkeypatch) -> None:
    client = _FlakyRedis(failures=1)
    monkeypatch.setattr(redis_module, "create_client", lambda config: client)
    config = RedisSettings(connect_retry_interval=0)

    first = await connect_redis(config)
    second = await connect_redis(config)

    assert first is client
    assert second is client
    assert client.pings == 2

    await close_redis()
    assert client.closed is True
    assert redis_module._redis_client is None  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_connect_redis_closes_client_when_bounded_retry_fails(monkeypatch) -> None:
    client = _FlakyRedis(failures=5)
    monkeypatch.setattr(redis_module, "create_client", lambda config: client)

    with pytest.raises(StoreConnectError):
        await connect_redis(RedisSettings(connect_retry_interval=0, connect_max_attempts=3))

    assert client.closed is True
    assert redis_module._redis_client is None  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_create_client_uses_section_settings() -> None:
    client = create_client(RedisSettings(host="cache", port=6380, db=2, socket_timeout="2s"))
    try:
        kwargs = client.connection_pool.connection_kwargs
        assert kwargs["host"] == "cache"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 2
        assert kwargs["socket_timeout"] == 2.0
    finally:
        await client.aclose()
