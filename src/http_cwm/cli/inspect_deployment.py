"""Show the persisted state of one deployment."""

import asyncio

import typer

from http_cwm.cli._console import dim, error_panel, nl, print_rows
from http_cwm.cli._settings import load_settings
from http_cwm.config import Settings
from http_cwm.services.aggregator import COUNTER_NAMES
from http_cwm.services.last_action import LastActionTracker
from http_cwm.services.redis import StoreConnectError, create_client, wait_for_redis


async def read_deployment(settings: Settings, deployment_id: str, attempts: int) -> dict:
    client = create_client(settings.redis)
    try:
        await wait_for_redis(
            client,
            retry_interval=settings.redis.connect_retry_interval,
            max_attempts=attempts,
        )
        tracker = LastActionTracker(client, prefix=settings.redis.last_update_prefix)
        pipe = client.pipeline(transaction=False)
        pipe.get(tracker.key(deployment_id))
        for name in COUNTER_NAMES:
            pipe.get(f"{settings.redis.metrics_prefix}:{deployment_id}:{name}")
        last_action, *values = await pipe.execute()
    finally:
        await client.aclose()

    return {
        "last_action": last_action,
        "counters": {name: int(value or 0) for name, value in zip(COUNTER_NAMES, values)},
    }


def inspect_deployment(
    deployment_id: str = typer.Argument(..., help="Deployment id to look up"),
    attempts: int = typer.Option(
        3, "--attempts", min=1, help="Redis connection attempts before giving up"
    ),
) -> None:
    """Print the persisted counters and last action time of a deployment."""
    settings = load_settings(tag="inspect")
    try:
        state = asyncio.run(read_deployment(settings, deployment_id, attempts))
    except StoreConnectError as e:
        error_panel(str(e), title="Redis unavailable")
        raise typer.Exit(1) from e

    print_rows(
        [("last_action", state["last_action"]), *state["counters"].items()],
        title=deployment_id,
        headers=("Key", "Value"),
        align_values="right",
    )
    if state["last_action"] is None:
        dim("No activity recorded for this deployment yet.")
    nl()
