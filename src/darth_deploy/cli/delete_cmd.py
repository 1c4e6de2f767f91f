"""``darth-deploy delete`` — tear down a stack."""

from __future__ import annotations

import click

from ..config.models import StackKind
from ..errors import DeployError, StackNotFoundError
from .helpers import console, make_deployer, require_config, require_env


@click.command()
@click.option("--env", "env_name", required=True, help="Environment of the stack.")
@click.option("--stack", "stack_name", required=True, help="Stack to delete.")
@click.option("--force", is_flag=True, help="Skip confirmation prompt.")
def delete(env_name: str, stack_name: str, force: bool) -> None:
    """Delete one stack of an environment."""
    config, _ = require_config()
    require_env(config, env_name)

    try:
        stack = config.get_stack(stack_name)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)

    deployer = make_deployer(config, env_name)

    if stack.kind == StackKind.SHARED:
        # Shared stacks back every environment's stacks.
        for other in config.stacks:
            if other.kind == StackKind.SHARED:
                continue
            for other_env in config.environments:
                other_name = config.get_stack_name(other, other_env)
                try:
                    deployer.describe(other_name)
                except StackNotFoundError:
                    continue
                except DeployError as exc:
                    console.print(f"[red]{exc}[/red]")
                    raise SystemExit(1)
                console.print(
                    f"[red]Cannot delete shared stack '{stack_name}' while "
                    f"'{other_name}' still exists. Delete it first.[/red]"
                )
                raise SystemExit(1)

    cfn_name = config.get_stack_name(stack, env_name)
    if not force:
        click.confirm(f"Delete stack '{cfn_name}'?", abort=True)

    console.print(f"[bold]Deleting [cyan]{cfn_name}[/cyan]...[/bold]")
    try:
        deployer.delete(cfn_name)
    except StackNotFoundError:
        console.print(f"[dim]Stack {cfn_name} does not exist[/dim]")
        return
    except DeployError as exc:
        console.print(f"[red]✗ Delete of {cfn_name} failed: {exc}[/red]")
        raise SystemExit(1)

    console.print(f"[green]✓ Deleted {cfn_name}[/green]")
