"""Wiring of the ingestion components around one Redis client."""

from dataclasses import dataclass
from typing import Any

from http_cwm.config import Settings
from http_cwm.services.aggregator import MetricsAggregator
from http_cwm.services.emitter import EventEmitter, build_emitter
from http_cwm.services.flusher import MetricsFlusher
from http_cwm.services.last_action import LastActionTracker, LastActionWriter
from http_cwm.services.pipeline import IngestionPipeline


@dataclass
class ServiceRuntime:
    settings: Settings
    redis: Any
    aggregator: MetricsAggregator
    tracker: LastActionTracker
    last_action: LastActionWriter
    flusher: MetricsFlusher
    pipeline: IngestionPipeline

    async def start(self) -> None:
        await self.last_action.start()
        await self.flusher.start()

    async def stop(self) -> None:
        """Stop background tasks; both write their pending state before returning."""
        await self.last_action.stop()
        await self.flusher.stop()


def build_runtime(
    settings: Settings,
    redis_client: Any,
    *,
    emitter: EventEmitter | None = None,
) -> ServiceRuntime:
    aggregator = MetricsAggregator()
    tracker = LastActionTracker(
        redis_client,
        prefix=settings.redis.last_update_prefix,
        grace_period=settings.redis.grace_period,
    )
    last_action = LastActionWriter(tracker, maxsize=settings.redis.last_action_queue_size)
    flusher = MetricsFlusher(
        aggregator,
        redis_client,
        metrics_prefix=settings.redis.metrics_prefix,
        interval_seconds=settings.redis.flush_interval,
        flush_on_shutdown=settings.redis.flush_on_shutdown,
    )
    pipeline = IngestionPipeline(
        tag=settings.tag,
        aggregator=aggregator,
        last_action=last_action,
        emitter=emitter if emitter is not None else build_emitter(settings, redis_client),
    )
    return ServiceRuntime(
        settings=settings,
        redis=redis_client,
        aggregator=aggregator,
        tracker=tracker,
        last_action=last_action,
        flusher=flusher,
        pipeline=pipeline,
    )
