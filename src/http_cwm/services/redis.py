"""Redis connection for the ingestion service."""

import asyncio
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from http_cwm.config import RedisSettings

logger = logging.getLogger(__name__)

# Redis client singleton
_redis_client: redis.Redis | None = None


class StoreConnectError(RuntimeError):
    """Raised when Redis stays unreachable for every allowed connect attempt."""


def create_client(config: RedisSettings) -> redis.Redis:
    return redis.Redis(
        host=config.host,
        port=config.port,
        db=config.db,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_timeout,
        decode_responses=True,
    )


async def wait_for_redis(
    client: redis.Redis,
    *,
    retry_interval: float = 1.0,
    max_attempts: int | None = None,
) -> int:
    """
    Block until ``PING`` succeeds.

    Retries every ``retry_interval`` seconds, forever when ``max_attempts`` is
    None.

    Returns:
        The number of attempts it took.

    Raises:
        StoreConnectError: ``max_attempts`` pings failed.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            if await client.ping():
                return attempt
            logger.error("Redis ping returned false. Retrying...")
        except (RedisError, OSError) as exc:
            logger.error("Unable to connect to Redis server! ERROR: '%s'. Retrying...", exc)

        if max_attempts is not None and attempt >= max_attempts:
            raise StoreConnectError(f"Redis not reachable after {attempt} attempt(s)")
        await asyncio.sleep(retry_interval)


async def connect_redis(config: RedisSettings) -> redis.Redis:
    """
    Connect to Redis and return the client.

    Call this during startup; it does not return until Redis answers.
    The client is kept as a module singleton until close_redis().
    """
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    logger.info("Connecting with Redis [%s]", config.url)
    client = create_client(config)
    try:
        attempts = await wait_for_redis(
            client,
            retry_interval=config.connect_retry_interval,
            max_attempts=config.connect_max_attempts,
        )
    except BaseException:
        await client.aclose()
        raise

    logger.info("Redis connected after %d attempt(s)", attempts)
    _redis_client = client
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
