"""Periodic flush of aggregated metrics into Redis counters.

Every ``flush_interval`` seconds the aggregator is drained and each non-zero
counter becomes one ``INCRBY {metrics_prefix}:{deployment_id}:{counter}`` in a
single non-transactional pipeline. Increments commute, so several service
instances can flush into the same keys without losing updates.

A failed flush drops the drained snapshot; counters are never merged back.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from redis.exceptions import RedisError

from http_cwm.services.aggregator import MetricsAggregator

logger = logging.getLogger(__name__)


@dataclass
class FlushStats:
    flushes: int = 0
    empty_flushes: int = 0
    failures: int = 0
    increments: int = 0
    dropped_deployments: int = 0
    last_flush_at: str | None = None
    last_error: str | None = None


class MetricsFlusher:
    """Drains a ``MetricsAggregator`` into Redis on a fixed interval."""

    def __init__(
        self,
        aggregator: MetricsAggregator,
        redis_client: Any,
        *,
        metrics_prefix: str = "deploymentid:minio-metrics",
        interval_seconds: float = 300.0,
        flush_on_shutdown: bool = True,
    ) -> None:
        self._aggregator = aggregator
        self._redis = redis_client
        self._metrics_prefix = metrics_prefix
        self._interval_seconds = interval_seconds
        self._flush_on_shutdown = flush_on_shutdown
        self._flush_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self.stats = FlushStats()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the flush background task."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Metrics flusher started (interval=%ss, prefix=%s)",
            self._interval_seconds,
            self._metrics_prefix,
        )

    async def stop(self) -> None:
        """Stop the flush background task, flushing pending counters first."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        if self._flush_on_shutdown:
            await self.flush()
        logger.info("Metrics flusher stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                # A drained snapshot must reach Redis even if stop() cancels us mid-flush.
                await asyncio.shield(self.flush())
            except Exception:
                self.stats.failures += 1
                logger.exception("Unexpected error while flushing metrics")

    async def flush(self) -> int:
        """Drain the aggregator once. Returns the number of increments written."""
        async with self._flush_lock:
            snapshot = self._aggregator.drain_and_reset()
            self.stats.last_flush_at = snapshot.taken_at.isoformat()

            if not snapshot:
                self.stats.empty_flushes += 1
                return 0

            increments = list(snapshot.increments(self._metrics_prefix))
            logger.debug(
                "Flushing metrics: %d deployment(s), %d increment(s)",
                len(snapshot),
                len(increments),
            )
            if not increments:
                self.stats.flushes += 1
                return 0

            try:
                pipe = self._redis.pipeline(transaction=False)
                for key, amount in increments:
                    pipe.incrby(key, amount)
                await pipe.execute()
            except (RedisError, OSError) as exc:
                self.stats.failures += 1
                self.stats.dropped_deployments += len(snapshot)
                self.stats.last_error = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "Unable to flush metrics, dropping %d deployment(s)! ERROR: '%s'",
                    len(snapshot),
                    exc,
                )
                return 0

            self.stats.flushes += 1
            self.stats.increments += len(increments)
            self.stats.last_error = None
            logger.debug("Flushing complete!")
            return len(increments)
