"""``darth-deploy events`` — print a stack's resource events."""

from __future__ import annotations

import queue
import threading
from datetime import datetime, timedelta, timezone

import click
from rich.text import Text

from ..aws.cloudformation import StackEvent
from ..aws.status import is_failure, is_in_progress
from ..errors import DeployError
from ..stream.aggregator import EventAggregator
from .helpers import console, make_deployer, require_config, require_env


def format_event(event: StackEvent) -> Text:
    """One line per event: time, logical id, status and reason."""
    if is_failure(event.resource_status):
        style = "red"
    elif is_in_progress(event.resource_status):
        style = "yellow"
    else:
        style = "green"
    text = Text(event.timestamp.strftime("%H:%M:%S "), style="dim")
    text.append(f"{event.logical_resource_id} ", style="bold")
    text.append(event.resource_status, style=style)
    if event.status_reason:
        text.append(f"  {event.status_reason}", style="dim")
    return text


@click.command()
@click.option("--env", "env_name", required=True, help="Environment of the stack.")
@click.option("--stack", "stack_name", required=True, help="Stack to read events from.")
@click.option(
    "--since",
    "since_minutes",
    type=int,
    default=60,
    show_default=True,
    help="Only show events from the last N minutes.",
)
@click.option("--follow", is_flag=True, help="Keep streaming new events until Ctrl-C.")
def events(env_name: str, stack_name: str, since_minutes: int, follow: bool) -> None:
    """Print events of a stack and of its nested stacks."""
    config, _ = require_config()
    require_env(config, env_name)
    try:
        stack = config.get_stack(stack_name)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)

    deployer = make_deployer(config, env_name)
    sink: queue.Queue = queue.Queue()
    since = datetime.now(timezone.utc) - timedelta(minutes=since_minutes)
    aggregator = deployer.stream_events(
        config.get_stack_name(stack, env_name), sink, since=since
    )

    if not follow:
        try:
            aggregator.poll(follow_new=True)
        except DeployError as exc:
            console.print(f"[red]{exc}[/red]")
            raise SystemExit(1)
        aggregator.notify()
        aggregator.close()
        _print_batches(sink)
        return

    stop = threading.Event()
    errors: list[DeployError] = []
    worker = threading.Thread(
        target=_follow, args=(aggregator, stop, errors), daemon=True
    )
    worker.start()
    try:
        _print_batches(sink)
    except KeyboardInterrupt:
        stop.set()
        worker.join()
        return
    worker.join()
    if errors:
        console.print(f"[red]{errors[0]}[/red]")
        raise SystemExit(1)


def _print_batches(sink: queue.Queue) -> None:
    while True:
        batch = sink.get()
        if batch is None:
            return
        for event in batch:
            console.print(format_event(event))


def _follow(
    aggregator: EventAggregator, stop: threading.Event, errors: list[DeployError]
) -> None:
    try:
        aggregator.run(stop)
    except DeployError as exc:
        errors.append(exc)
