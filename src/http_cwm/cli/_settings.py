"""Settings loading shared by CLI commands."""

from typing import Any

import typer
from pydantic import ValidationError

from http_cwm.cli._console import error_panel
from http_cwm.config import Settings


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment plus non-None command-line overrides."""
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as exc:
        lines = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        error_panel("\n".join(lines), title="Invalid configuration")
        raise typer.Exit(1) from exc
