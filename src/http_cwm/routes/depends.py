"""Shared FastAPI dependencies for route handlers."""

from fastapi import HTTPException, Request

from http_cwm.services.runtime import ServiceRuntime


def require_runtime(request: Request) -> ServiceRuntime:
    """FastAPI dependency that returns the service runtime or raises 503."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Service not started")
    return runtime
