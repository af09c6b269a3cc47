"""In-memory per-deployment traffic counters.

Request handlers call ``update`` for every accepted event while the flusher
periodically calls ``drain_and_reset``. Both take the same lock, so an update
lands either in the drained snapshot or in the fresh mapping, never both.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from http_cwm.events import RequestType

COUNTER_NAMES: tuple[str, ...] = (
    "bytes_in",
    "bytes_out",
    "num_requests_in",
    "num_requests_out",
    "num_requests_misc",
)


@dataclass(slots=True)
class DeploymentMetrics:
    bytes_in: int = 0
    bytes_out: int = 0
    num_requests_in: int = 0
    num_requests_out: int = 0
    num_requests_misc: int = 0

    def add(self, request_type: RequestType, request_length: int, response_length: int) -> None:
        self.bytes_in += request_length
        self.bytes_out += response_length
        if request_type is RequestType.IN:
            self.num_requests_in += 1
        elif request_type is RequestType.OUT:
            self.num_requests_out += 1
        else:
            self.num_requests_misc += 1

    def as_counters(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Read-only copy of the aggregator mapping at one point in time."""

    deployments: Mapping[str, Mapping[str, int]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_metrics(cls, metrics: Mapping[str, DeploymentMetrics]) -> MetricsSnapshot:
        frozen = {
            deployment_id: MappingProxyType(m.as_counters())
            for deployment_id, m in metrics.items()
        }
        return cls(deployments=MappingProxyType(frozen))

    def __len__(self) -> int:
        return len(self.deployments)

    def __bool__(self) -> bool:
        return bool(self.deployments)

    def get(self, deployment_id: str) -> Mapping[str, int] | None:
        return self.deployments.get(deployment_id)

    def increments(self, metrics_prefix: str) -> Iterator[tuple[str, int]]:
        """Yield ``(redis_key, amount)`` for every non-zero counter."""
        for deployment_id, counters in self.deployments.items():
            for name in COUNTER_NAMES:
                value = counters.get(name, 0)
                if value > 0:
                    yield f"{metrics_prefix}:{deployment_id}:{name}", value

    def totals(self) -> dict[str, int]:
        """Sum each counter across all deployments."""
        out = dict.fromkeys(COUNTER_NAMES, 0)
        for counters in self.deployments.values():
            for name in COUNTER_NAMES:
                out[name] += counters.get(name, 0)
        return out


class MetricsAggregator:
    """Thread-safe deployment id → ``DeploymentMetrics`` mapping."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, DeploymentMetrics] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)

    def update(
        self,
        deployment_id: str,
        request_type: RequestType,
        request_length: int,
        response_length: int,
    ) -> None:
        if request_length < 0 or response_length < 0:
            raise ValueError(
                f"lengths must be non-negative (request={request_length}, "
                f"response={response_length})"
            )

        with self._lock:
            metrics = self._metrics.get(deployment_id)
            if metrics is None:
                metrics = self._metrics[deployment_id] = DeploymentMetrics()
            metrics.add(request_type, request_length, response_length)

    def drain_and_reset(self) -> MetricsSnapshot:
        """Swap out the live mapping and return it as a snapshot."""
        with self._lock:
            drained, self._metrics = self._metrics, {}
        return MetricsSnapshot.from_metrics(drained)

    def peek(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot.from_metrics(self._metrics)
