"""Run the ingestion server."""

import typer

from http_cwm.cli._console import error_panel, setup_logging
from http_cwm.cli._settings import load_settings
from http_cwm.logging import configure_logging


def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host"),
    port: int | None = typer.Option(None, "--port", help="Bind port"),
    tag: str | None = typer.Option(
        None, "--tag", envvar="CWM_TAG", help="Tag of routed events and ingest path"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Start the ingestion server.

    Redis and the remaining options are read from CWM_* environment variables.
    """
    settings = load_settings(host=host, port=port, tag=tag, debug=verbose or None)

    if settings.log_format == "json":
        configure_logging(log_format="json", debug=settings.debug)
    else:
        setup_logging(verbose=settings.debug)

    import uvicorn

    from http_cwm.main import create_app

    try:
        uvicorn.run(
            create_app(settings),
            host=settings.host,
            port=settings.port,
            log_config=None,
        )
    except Exception as e:
        error_panel(str(e), title="Server start failed")
        raise typer.Exit(1) from e
