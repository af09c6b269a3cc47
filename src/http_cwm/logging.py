"""Process-wide logging for the ingestion server.

Two renderings are supported: a plain ``text`` line for terminals and one JSON
object per line (``json``) for log shippers. Records emitted while an event is
being processed carry the event's ``deployment_id``.
"""

import json
import logging
from contextvars import ContextVar
from datetime import UTC, datetime

deployment_id_var: ContextVar[str | None] = ContextVar("deployment_id", default=None)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class DeploymentIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.deployment_id = deployment_id_var.get()  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    """Render a record as ``{"timestamp", "level", "logger", "message", ...}``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        deployment_id = getattr(record, "deployment_id", None)
        if deployment_id is not None:
            entry["deployment_id"] = deployment_id

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["error"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "stacktrace": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


def configure_logging(*, log_format: str = "text", debug: bool = False) -> None:
    """Replace the root handlers with a single stream handler."""
    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(DeploymentIDFilter())
    handler.setFormatter(
        JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT)
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
