"""http-cwm CLI."""

import typer

from http_cwm.cli._console import console
from http_cwm.cli.inspect_deployment import inspect_deployment
from http_cwm.cli.serve import serve
from http_cwm.cli.show_config import show_config

app = typer.Typer(
    name="http-cwm",
    help="Object-storage webhook ingestion with per-deployment metrics.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from http_cwm import __version__

        console.print(f"[bold]http-cwm[/bold] [dim]{__version__}[/dim]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version",
    ),
) -> None:
    """Ingest object-storage API events and persist traffic counters to Redis."""


# Register commands
app.command()(serve)
app.command("config")(show_config)
app.command("inspect")(inspect_deployment)
