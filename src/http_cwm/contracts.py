"""Health and operational contract payloads."""

from pydantic import BaseModel, Field


class DependencyHealth(BaseModel):
    """Readiness status for a dependency."""

    status: str = "ok"
    detail: str | None = None


class IngestStatsSummary(BaseModel):
    """Pipeline counters since process start."""

    received: int = 0
    parse_errors: int = 0
    invalid_events: int = 0
    routed: int = 0


class LastActionStatsSummary(BaseModel):
    """Last-action writer counters since process start."""

    running: bool = False
    pending: int = 0
    queued: int = 0
    coalesced: int = 0
    dropped: int = 0
    written: int = 0


class FlushStatsSummary(BaseModel):
    """Flusher counters since process start."""

    running: bool = False
    flushes: int = 0
    empty_flushes: int = 0
    failures: int = 0
    increments: int = 0
    dropped_deployments: int = 0
    last_flush_at: str | None = None
    last_error: str | None = None


class HealthMetrics(BaseModel):
    """Structured health metrics payload."""

    redis: DependencyHealth = Field(default_factory=DependencyHealth)
    pending_deployments: int = 0
    pending_counters: dict[str, int] = Field(default_factory=dict)
    ingest: IngestStatsSummary = Field(default_factory=IngestStatsSummary)
    last_action: LastActionStatsSummary = Field(default_factory=LastActionStatsSummary)
    flush: FlushStatsSummary = Field(default_factory=FlushStatsSummary)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    tag: str
    metrics: HealthMetrics = Field(default_factory=HealthMetrics)


__all__ = [
    "DependencyHealth",
    "FlushStatsSummary",
    "HealthMetrics",
    "HealthResponse",
    "IngestStatsSummary",
    "LastActionStatsSummary",
]
