"""Print the effective configuration."""

from http_cwm.cli._console import nl, print_rows
from http_cwm.cli._settings import load_settings


def show_config() -> None:
    """Show the configuration resolved from CWM_* variables and .env."""
    settings = load_settings()

    rows = [(name, value) for name, value in settings.model_dump(exclude={"redis"}).items()]
    rows.append(("ingest_path", settings.ingest_path))
    rows.extend((f"redis.{name}", value) for name, value in settings.redis.model_dump().items())

    print_rows(rows)
    nl()
