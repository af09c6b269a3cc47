"""Console output shared by the http-cwm commands."""

import logging
import os
from collections.abc import Iterable

from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

# NO_COLOR=1 disables styling; otherwise colors are forced for piped output too.
_plain = os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes")

console = Console(highlight=False, force_terminal=not _plain, no_color=_plain)

_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def nl() -> None:
    console.print()


def dim(msg: str) -> None:
    console.print(f"  [dim]{msg}[/dim]")


def error_panel(msg: str, *, title: str = "Failed") -> None:
    """Print ``msg`` in a red panel headed by ``title``."""
    body = Text.assemble(("✗ ", "red bold"), (title, "red"), "\n\n", (msg, "dim"))
    console.print(
        Panel(body, border_style="red dim", box=ROUNDED, padding=(0, 1), expand=False)
    )


def print_rows(
    rows: Iterable[tuple[str, object]],
    *,
    title: str | None = None,
    headers: tuple[str, str] = ("Option", "Value"),
    align_values: str = "left",
) -> None:
    """Print two-column ``(name, value)`` rows framed by blank lines."""
    table = Table(box=ROUNDED, border_style="dim", title=title)
    table.add_column(headers[0], style="bold")
    table.add_column(headers[1], justify=align_values)  # type: ignore[arg-type]
    for name, value in rows:
        table.add_row(name, "-" if value is None else str(value))

    nl()
    console.print(table)


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich; ``verbose`` enables ``DEBUG``."""
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                show_time=False,
                show_path=False,
                rich_tracebacks=True,
                markup=False,
                keywords=[],
            )
        ],
        force=True,
    )
    logging.getLogger("http_cwm").setLevel(level)
