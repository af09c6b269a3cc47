"""Webhook ingestion route."""

import logging

from fastapi import APIRouter, Depends, Request, Response

from http_cwm.routes.depends import require_runtime
from http_cwm.services.runtime import ServiceRuntime

logger = logging.getLogger(__name__)


def build_ingest_router(tag: str) -> APIRouter:
    """Router exposing ``POST /<tag>``.

    The response is always an empty ``200 text/plain``: senders of telemetry are
    never told that a payload was malformed or incomplete.
    """
    router = APIRouter(tags=["ingest"])

    @router.post(f"/{tag}", status_code=200, response_class=Response)
    async def ingest(
        request: Request,
        runtime: ServiceRuntime = Depends(require_runtime),
    ) -> Response:
        body = await request.body()
        try:
            await runtime.pipeline.process(body)
        except Exception:
            logger.exception("Unexpected error while processing event")
        return Response(status_code=200, headers={"Content-Type": "text/plain"})

    return router
