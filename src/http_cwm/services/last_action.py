"""Grace-gated "last seen" timestamps per deployment.

Every accepted event touches its deployment, but the timestamp stored at
``{prefix}:{deployment_id}`` is only rewritten when it is missing or older than
the grace period. The read and the write are separate commands, so two concurrent
touches may both write.

Request handlers never wait for Redis here: they hand the deployment id to
``LastActionWriter``, whose background task calls ``LastActionTracker.touch``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_timestamp(at: datetime) -> str:
    return at.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str | bytes) -> datetime:
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def elapsed_seconds(since: datetime, now: datetime) -> int:
    """Whole seconds between two instants (truncated toward zero)."""
    return int((now - since).total_seconds())


class LastActionTracker:
    """Writes a deployment's last action time at most once per grace period."""

    def __init__(
        self,
        redis_client: Any,
        *,
        prefix: str = "deploymentid:last_action",
        grace_period: float = 300.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._grace_period = grace_period
        self._clock = clock

    @property
    def grace_period(self) -> float:
        return self._grace_period

    def key(self, deployment_id: str) -> str:
        return f"{self._prefix}:{deployment_id}"

    async def touch(self, deployment_id: str, at: datetime | None = None) -> bool:
        """
        Record activity for a deployment. Returns True when the store was written.

        ``at`` is the time of the activity and defaults to now. The grace period
        is always measured from the stored value to now.
        """
        key = self.key(deployment_id)
        try:
            stored = await self._redis.get(key)
            now = self._clock()

            if stored is None:
                logger.debug("Last action entry does not exist [key: %s]", key)
            else:
                last = parse_timestamp(stored)
                elapsed = elapsed_seconds(last, now)
                if elapsed < self._grace_period:
                    return False
                logger.debug(
                    "Grace period expired for last action update [key: %s, elapsed: %ss]",
                    key,
                    elapsed,
                )

            value = format_timestamp(at or now)
            await self._redis.set(key, value)
            logger.debug("Updated last action entry [%s => %s]", key, value)
            return True
        except (RedisError, OSError) as exc:
            logger.error("Unable to update last action [key: %s]! ERROR: '%s'", key, exc)
        except ValueError as exc:
            logger.error("Unparsable last action entry [key: %s]! ERROR: '%s'", key, exc)
        return False


@dataclass
class LastActionStats:
    queued: int = 0
    coalesced: int = 0
    dropped: int = 0
    written: int = 0


class LastActionWriter:
    """
    Runs ``LastActionTracker.touch`` off the request path.

    ``submit`` only records the deployment and the time of the event; a
    background task performs the Redis round-trips. A deployment waits in the
    queue at most once: submitting it again while it is pending just moves its
    timestamp forward. When ``maxsize`` distinct deployments are pending, new
    ones are dropped and counted.
    """

    def __init__(
        self,
        tracker: LastActionTracker,
        *,
        maxsize: int = 10_000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._tracker = tracker
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._pending: dict[str, datetime] = {}
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self.stats = LastActionStats()

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, deployment_id: str) -> bool:
        """Queue a touch for ``deployment_id``. Returns False when it was dropped."""
        at = self._clock()
        if deployment_id in self._pending:
            self._pending[deployment_id] = at
            self.stats.coalesced += 1
            return True

        try:
            self._queue.put_nowait(deployment_id)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            logger.warning(
                "Last action queue is full, dropping entry [deployment: %s]", deployment_id
            )
            return False

        self._pending[deployment_id] = at
        self.stats.queued += 1
        return True

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Last action writer started")

    async def stop(self) -> None:
        """Stop the background task, then write whatever is still queued."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        written = await self.drain()
        logger.info("Last action writer stopped (%d pending entry(ies) written)", written)

    async def drain(self) -> int:
        """Process every queued entry now. Returns the number of store writes."""
        written = 0
        while True:
            try:
                deployment_id = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return written
            if await self._process(deployment_id):
                written += 1

    async def _loop(self) -> None:
        while True:
            deployment_id = await self._queue.get()
            await self._process(deployment_id)

    async def _process(self, deployment_id: str) -> bool:
        at = self._pending.pop(deployment_id, None)
        try:
            updated = await self._tracker.touch(deployment_id, at=at)
        except Exception:
            logger.exception("Unexpected error updating last action [deployment: %s]", deployment_id)
            return False

        if updated:
            self.stats.written += 1
        return updated
