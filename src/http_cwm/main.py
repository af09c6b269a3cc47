"""http-cwm ingestion server."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from http_cwm.config import Settings, get_settings
from http_cwm.logging import configure_logging
from http_cwm.routes import build_ingest_router, health_router
from http_cwm.services.emitter import EventEmitter
from http_cwm.services.redis import close_redis, connect_redis, wait_for_redis
from http_cwm.services.runtime import build_runtime

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    *,
    redis_client: Any | None = None,
    emitter: EventEmitter | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service configuration.
        redis_client: Pre-built client. When omitted the lifespan connects
            (and later disconnects) the shared client from ``settings.redis``.
        emitter: Downstream sink override; defaults to ``settings.emit_backend``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""

        # Startup
        logger.info("Starting HTTP server [%s:%s]...", settings.host, settings.port)

        owns_client = redis_client is None
        if owns_client:
            client = await connect_redis(settings.redis)
        else:
            client = redis_client
            await wait_for_redis(
                client,
                retry_interval=settings.redis.connect_retry_interval,
                max_attempts=settings.redis.connect_max_attempts,
            )

        runtime = build_runtime(settings, client, emitter=emitter)
        app.state.runtime = runtime
        await runtime.start()
        logger.info("Accepting events on POST %s", settings.ingest_path)

        try:
            yield
        finally:
            # Shutdown
            logger.info("Shutting down HTTP server...")
            await runtime.stop()
            app.state.runtime = None

            if owns_client:
                await close_redis()
                logger.info("Redis disconnected")

    app = FastAPI(
        title="http-cwm",
        description="Object-storage webhook ingestion with per-deployment metrics",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.runtime = None

    app.include_router(health_router)
    app.include_router(build_ingest_router(settings.tag))
    return app


def app_factory() -> FastAPI:
    """Entry point for ``uvicorn --factory``: settings come from the environment."""
    settings = get_settings()
    configure_logging(log_format=settings.log_format, debug=settings.debug)
    return create_app(settings)


def main():
    """Run the server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "http_cwm.main:app_factory",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
