"""``darth-deploy status`` — show stack status and outputs."""

from __future__ import annotations

import click
from rich.table import Table

from ..aws.status import is_failure, is_in_progress
from ..errors import DeployError, StackNotFoundError
from .helpers import console, make_deployer, outputs_table, require_config, require_env


@click.command()
@click.option("--env", "env_name", required=True, help="Environment to inspect.")
@click.option(
    "--stack",
    "stack_names",
    multiple=True,
    help="Only show these stacks. Shows all stacks if omitted.",
)
def status(env_name: str, stack_names: tuple[str, ...]) -> None:
    """Show the status of an environment's stacks."""
    config, _ = require_config()
    require_env(config, env_name)
    try:
        stacks = (
            [config.get_stack(n) for n in stack_names]
            if stack_names
            else config.stacks
        )
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)

    deployer = make_deployer(config, env_name, show_progress=False)

    table = Table(title=f"{config.project_name} — {env_name}", title_justify="left")
    table.add_column("Stack", style="cyan")
    table.add_column("Status")
    table.add_column("Last updated", style="dim")
    deployed = []
    for stack in stacks:
        name = config.get_stack_name(stack, env_name)
        try:
            info = deployer.describe(name)
        except StackNotFoundError:
            table.add_row(name, "[dim]not deployed[/dim]", "")
            continue
        except DeployError as exc:
            console.print(f"[red]{exc}[/red]")
            raise SystemExit(1)
        style = (
            "red"
            if is_failure(info.status)
            else "yellow" if is_in_progress(info.status) else "green"
        )
        updated = info.last_updated_time or info.creation_time
        table.add_row(
            name,
            f"[{style}]{info.status}[/{style}]",
            updated.strftime("%Y-%m-%d %H:%M:%S") if updated else "",
        )
        deployed.append(info)

    console.print(table)
    for info in deployed:
        outputs = outputs_table(info)
        if outputs is not None:
            console.print(outputs)
