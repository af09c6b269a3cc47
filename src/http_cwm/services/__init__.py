from http_cwm.services.aggregator import (
    COUNTER_NAMES,
    DeploymentMetrics,
    MetricsAggregator,
    MetricsSnapshot,
)
from http_cwm.services.emitter import (
    EventEmitter,
    LogEmitter,
    NullEmitter,
    RedisStreamEmitter,
    build_emitter,
)
from http_cwm.services.flusher import FlushStats, MetricsFlusher
from http_cwm.services.last_action import LastActionStats, LastActionTracker, LastActionWriter
from http_cwm.services.pipeline import (
    IngestionPipeline,
    IngestResult,
    IngestStage,
    IngestStats,
)

__all__ = [
    "COUNTER_NAMES",
    "DeploymentMetrics",
    "EventEmitter",
    "FlushStats",
    "IngestResult",
    "IngestStage",
    "IngestStats",
    "IngestionPipeline",
    "LastActionStats",
    "LastActionTracker",
    "LastActionWriter",
    "LogEmitter",
    "MetricsAggregator",
    "MetricsFlusher",
    "MetricsSnapshot",
    "NullEmitter",
    "RedisStreamEmitter",
    "build_emitter",
]
