"""Health check routes."""

import logging

from fastapi import APIRouter, Depends, Response, status
from redis.exceptions import RedisError

from http_cwm.contracts import (
    DependencyHealth,
    FlushStatsSummary,
    HealthMetrics,
    HealthResponse,
    IngestStatsSummary,
    LastActionStatsSummary,
)
from http_cwm.routes.depends import require_runtime
from http_cwm.services.runtime import ServiceRuntime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_redis_readiness(runtime: ServiceRuntime) -> DependencyHealth:
    try:
        pong = await runtime.redis.ping()
    except (RedisError, OSError) as exc:
        return DependencyHealth(status="error", detail=f"Redis ping failed: {exc}")

    if pong is False:
        return DependencyHealth(status="error", detail="Redis ping returned false")

    return DependencyHealth(status="ok")


async def _build_health_response(runtime: ServiceRuntime) -> tuple[HealthResponse, bool]:
    redis_readiness = await _check_redis_readiness(runtime)
    ready = redis_readiness.status == "ok"

    pending = runtime.aggregator.peek()
    ingest = runtime.pipeline.stats
    last_action = runtime.last_action.stats
    flush = runtime.flusher.stats
    payload = HealthResponse(
        status="ok" if ready else "degraded",
        version=runtime.settings.version,
        tag=runtime.settings.tag,
        metrics=HealthMetrics(
            redis=redis_readiness,
            pending_deployments=len(pending),
            pending_counters=pending.totals(),
            ingest=IngestStatsSummary(
                received=ingest.received,
                parse_errors=ingest.parse_errors,
                invalid_events=ingest.invalid_events,
                routed=ingest.routed,
            ),
            last_action=LastActionStatsSummary(
                running=runtime.last_action.running,
                pending=len(runtime.last_action),
                queued=last_action.queued,
                coalesced=last_action.coalesced,
                dropped=last_action.dropped,
                written=last_action.written,
            ),
            flush=FlushStatsSummary(
                running=runtime.flusher.running,
                flushes=flush.flushes,
                empty_flushes=flush.empty_flushes,
                failures=flush.failures,
                increments=flush.increments,
                dropped_deployments=flush.dropped_deployments,
                last_flush_at=flush.last_flush_at,
                last_error=flush.last_error,
            ),
        ),
    )
    return payload, ready


@router.get("/health", response_model=HealthResponse)
async def health_check(
    runtime: ServiceRuntime = Depends(require_runtime),
) -> HealthResponse:
    """
    Liveness endpoint with dependency status details.

    This endpoint always returns 200 when the process is alive.
    See /ready for strict readiness signaling.
    """
    payload, _ = await _build_health_response(runtime)
    return payload


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(
    response: Response,
    runtime: ServiceRuntime = Depends(require_runtime),
) -> HealthResponse:
    """Readiness endpoint for load balancers and traffic gating."""
    payload, ready = await _build_health_response(runtime)
    if not ready:
        logger.warning("Readiness check failed: %s", payload.metrics.redis.detail)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return payload
