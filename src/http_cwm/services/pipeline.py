"""Per-event ingestion pipeline.

    RECEIVED -> PARSED -> VALIDATED -> CLASSIFIED -> AGGREGATED -> TOUCHED -> ROUTED

A payload that cannot be parsed or lacks a required field stops at REJECTED:
nothing is aggregated, touched or routed, and only a debug record is logged.
TOUCHED means the deployment was handed to the last-action writer; the Redis
round-trips happen in the writer's background task. No stage raises to the
caller; the HTTP layer always answers 200.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from http_cwm.events import ParseError, build_event, find_missing_field, parse_payload
from http_cwm.logging import deployment_id_var
from http_cwm.services.aggregator import MetricsAggregator
from http_cwm.services.emitter import EventEmitter
from http_cwm.services.last_action import LastActionWriter

logger = logging.getLogger(__name__)


class IngestStage(StrEnum):
    RECEIVED = "received"
    PARSED = "parsed"
    VALIDATED = "validated"
    CLASSIFIED = "classified"
    AGGREGATED = "aggregated"
    TOUCHED = "touched"
    ROUTED = "routed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class IngestResult:
    stage: IngestStage
    deployment_id: str | None = None
    reason: str | None = None
    last_action_queued: bool = False

    @property
    def updated(self) -> bool:
        return self.stage is IngestStage.ROUTED


@dataclass
class IngestStats:
    received: int = 0
    parse_errors: int = 0
    invalid_events: int = 0
    routed: int = 0


class IngestionPipeline:
    def __init__(
        self,
        *,
        tag: str,
        aggregator: MetricsAggregator,
        last_action: LastActionWriter,
        emitter: EventEmitter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tag = tag
        self._aggregator = aggregator
        self._last_action = last_action
        self._emitter = emitter
        self._clock = clock
        self.stats = IngestStats()

    async def process(self, raw: bytes) -> IngestResult:
        self.stats.received += 1

        try:
            data = parse_payload(raw)
        except ParseError as exc:
            self.stats.parse_errors += 1
            logger.debug("ERROR: %s", exc)
            return IngestResult(IngestStage.REJECTED, reason=str(exc))

        missing = find_missing_field(data)
        if missing is not None:
            self.stats.invalid_events += 1
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("missing '%s': %s", missing, json.dumps(data, default=str))
            return IngestResult(IngestStage.REJECTED, reason=f"missing '{missing}'")

        event = build_event(data)
        token = deployment_id_var.set(event.deployment_id)
        try:
            request_type = event.request_type
            logger.debug(
                "%s.%s: (type=%s, req_size=%d, res_size=%d, res_cache=%s)",
                event.deployment_id,
                event.api_name,
                request_type,
                event.request_content_length,
                event.response_content_length,
                event.response_cached,
            )

            self._aggregator.update(
                event.deployment_id,
                request_type,
                event.request_content_length,
                event.response_content_length,
            )
            queued = self._last_action.submit(event.deployment_id)

            await self._emitter.emit(self._tag, self._clock(), {"message": data})
            self.stats.routed += 1
        finally:
            deployment_id_var.reset(token)

        return IngestResult(
            IngestStage.ROUTED,
            deployment_id=event.deployment_id,
            last_action_queued=queued,
        )
