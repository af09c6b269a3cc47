"""HTTP routes."""

from http_cwm.routes.health import router as health_router
from http_cwm.routes.ingest import build_ingest_router

__all__ = [
    "build_ingest_router",
    "health_router",
]
