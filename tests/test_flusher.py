from __future__ import annotations

import asyncio
import logging

import pytest

from http_cwm.events import RequestType
from http_cwm.services.aggregator import MetricsAggregator
from http_cwm.services.flusher import MetricsFlusher

PREFIX = "deploymentid:minio-metrics"


class _RecordingRedis:
    """Counts pipelines so tests can assert no round-trip happened."""

    def __init__(self) -> None:
        self.pipelines = 0

    def pipeline(self, transaction: bool = True):  # noqa: ARG002
        self.pipelines += 1
        raise AssertionError("no pipeline expected")


def _flusher(aggregator: MetricsAggregator, redis_client, **kwargs) -> MetricsFlusher:
    return MetricsFlusher(
        aggregator,
        redis_client,
        metrics_prefix=PREFIX,
        interval_seconds=kwargs.pop("interval_seconds", 3600),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_flush_increments_non_zero_counters(fake_redis) -> None:
    aggregator = MetricsAggregator()
    aggregator.update("d1", RequestType.IN, 10, 20)
    aggregator.update("d1", RequestType.IN, 5, 0)
    aggregator.update("d2", RequestType.MISC, 0, 0)
    flusher = _flusher(aggregator, fake_redis)

    written = await flusher.flush()

    assert written == 4
    assert await fake_redis.get(f"{PREFIX}:d1:bytes_in") == "15"
    assert await fake_redis.get(f"{PREFIX}:d1:bytes_out") == "20"
    assert await fake_redis.get(f"{PREFIX}:d1:num_requests_in") == "2"
    assert await fake_redis.get(f"{PREFIX}:d2:num_requests_misc") == "1"
    for skipped in ("num_requests_out", "num_requests_misc"):
        assert await fake_redis.exists(f"{PREFIX}:d1:{skipped}") == 0
    assert await fake_redis.exists(f"{PREFIX}:d2:bytes_in") == 0
    assert len(aggregator) == 0
    assert flusher.stats.flushes == 1
    assert flusher.stats.increments == 4


@pytest.mark.asyncio
async def test_flushes_add_to_existing_counters(fake_redis) -> None:
    await fake_redis.set(f"{PREFIX}:d1:num_requests_out", 40)
    aggregator = MetricsAggregator()
    flusher = _flusher(aggregator, fake_redis)

    aggregator.update("d1", RequestType.OUT, 0, 1)
    await flusher.flush()
    aggregator.update("d1", RequestType.OUT, 0, 1)
    await flusher.flush()

    assert await fake_redis.get(f"{PREFIX}:d1:num_requests_out") == "42"
    assert await fake_redis.get(f"{PREFIX}:d1:bytes_out") == "2"


@pytest.mark.asyncio
async def test_empty_flush_performs_no_store_round_trip() -> None:
    redis_client = _RecordingRedis()
    flusher = _flusher(MetricsAggregator(), redis_client)

    assert await flusher.flush() == 0
    assert redis_client.pipelines == 0
    assert flusher.stats.empty_flushes == 1
    assert flusher.stats.flushes == 0


@pytest.mark.asyncio
async def test_failed_flush_drops_snapshot_without_merging_back(
    unavailable_redis, caplog
) -> None:
    aggregator = MetricsAggregator()
    aggregator.update("d1", RequestType.IN, 1, 1)
    flusher = _flusher(aggregator, unavailable_redis)

    with caplog.at_level(logging.ERROR, logger="http_cwm.services.flusher"):
        assert await flusher.flush() == 0

    assert unavailable_redis.pipelines == 1
    assert len(unavailable_redis.queued) == 3
    assert len(aggregator) == 0
    assert flusher.stats.failures == 1
    assert flusher.stats.dropped_deployments == 1
    assert "ConnectionError" in (flusher.stats.last_error or "")
    assert "Unable to flush metrics" in caplog.text


@pytest.mark.asyncio
async def test_updates_after_drain_land_in_next_flush(fake_redis) -> None:
    aggregator = MetricsAggregator()
    flusher = _flusher(aggregator, fake_redis)

    aggregator.update("d1", RequestType.IN, 1, 0)
    await flusher.flush()
    aggregator.update("d1", RequestType.IN, 1, 0)

    assert await fake_redis.get(f"{PREFIX}:d1:num_requests_in") == "1"
    await flusher.flush()
    assert await fake_redis.get(f"{PREFIX}:d1:num_requests_in") == "2"


@pytest.mark.asyncio
async def test_background_loop_flushes_on_interval(fake_redis) -> None:
    aggregator = MetricsAggregator()
    flusher = _flusher(aggregator, fake_redis, interval_seconds=0.01, flush_on_shutdown=False)

    await flusher.start()
    assert flusher.running
    aggregator.update("d1", RequestType.OUT, 0, 3)

    for _ in range(100):
        if await fake_redis.get(f"{PREFIX}:d1:bytes_out") == "3":
            break
        await asyncio.sleep(0.01)

    await flusher.stop()
    assert not flusher.running
    assert await fake_redis.get(f"{PREFIX}:d1:bytes_out") == "3"


@pytest.mark.asyncio
async def test_stop_flushes_pending_counters(fake_redis) -> None:
    aggregator = MetricsAggregator()
    flusher = _flusher(aggregator, fake_redis)

    await flusher.start()
    aggregator.update("d1", RequestType.IN, 4, 0)
    await flusher.stop()

    assert await fake_redis.get(f"{PREFIX}:d1:bytes_in") == "4"


@pytest.mark.asyncio
async def test_stop_without_shutdown_flush_keeps_counters_in_memory(fake_redis) -> None:
    aggregator = MetricsAggregator()
    flusher = _flusher(aggregator, fake_redis, flush_on_shutdown=False)

    await flusher.start()
    aggregator.update("d1", RequestType.IN, 4, 0)
    await flusher.stop()

    assert await fake_redis.exists(f"{PREFIX}:d1:bytes_in") == 0
    assert len(aggregator) == 1


@pytest.mark.asyncio
async def test_concurrent_flush_calls_do_not_overlap(fake_redis, monkeypatch) -> None:
    aggregator = MetricsAggregator()
    flusher = _flusher(aggregator, fake_redis)
    active = 0
    max_active = 0
    original_pipeline = fake_redis.pipeline

    class _SlowPipeline:
        def __init__(self, inner) -> None:
            self._inner = inner

        def incrby(self, key: str, amount: int):
            return self._inner.incrby(key, amount)

        async def execute(self):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await self._inner.execute()

    monkeypatch.setattr(
        fake_redis, "pipeline", lambda transaction=True: _SlowPipeline(original_pipeline(transaction=transaction))
    )

    async def produce_and_flush(i: int) -> int:
        aggregator.update(f"d{i}", RequestType.IN, 1, 0)
        return await flusher.flush()

    await asyncio.gather(*(produce_and_flush(i) for i in range(5)))

    assert max_active == 1
    total = 0
    for i in range(5):
        total += int(await fake_redis.get(f"{PREFIX}:d{i}:num_requests_in") or 0)
    assert total == 5


@pytest.mark.asyncio
async def test_background_loop_survives_unexpected_errors(fake_redis, caplog) -> None:
    aggregator = MetricsAggregator()
    flusher = _flusher(aggregator, fake_redis, interval_seconds=0.01, flush_on_shutdown=False)
    drain = aggregator.drain_and_reset
    calls = 0

    def flaky_drain():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise KeyError("corrupted")
        return drain()

    aggregator.drain_and_reset = flaky_drain  # type: ignore[method-assign]
    aggregator.update("d1", RequestType.IN, 2, 0)

    with caplog.at_level(logging.ERROR, logger="http_cwm.services.flusher"):
        await flusher.start()
        for _ in range(100):
            if await fake_redis.get(f"{PREFIX}:d1:bytes_in") == "2":
                break
            await asyncio.sleep(0.01)
        assert flusher.running
        await flusher.stop()

    assert await fake_redis.get(f"{PREFIX}:d1:bytes_in") == "2"
    assert flusher.stats.failures == 1
    assert "Unexpected error while flushing metrics" in caplog.text
