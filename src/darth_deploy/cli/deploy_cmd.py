"""``darth-deploy deploy`` — create or update an environment's stacks."""

from __future__ import annotations

import click

from ..deploy.orchestrator import DeployRequest
from ..errors import DeployError
from ..template.renderer import TemplateRenderer, build_context
from .helpers import console, make_deployer, outputs_table, require_config, require_env


@click.command()
@click.option(
    "--env",
    "env_name",
    required=True,
    help="Environment to deploy (e.g. prod, dev, feature-xyz).",
)
@click.option(
    "--stack",
    "stack_names",
    multiple=True,
    help="Deploy only these stacks. Deploys all stacks in order if omitted.",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Don't stream resource events while deploying.",
)
def deploy(env_name: str, stack_names: tuple[str, ...], no_progress: bool) -> None:
    """Deploy the stacks of a given environment."""
    config, project_dir = require_config()
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

    renderer = TemplateRenderer(project_dir / "templates")
    deployer = make_deployer(config, env_name, show_progress=not no_progress)

    for stack in stacks:
        stack_name = config.get_stack_name(stack, env_name)
        console.print(
            f"[bold]Deploying [cyan]{stack_name}[/cyan] "
            f"to environment [cyan]{env_name}[/cyan]...[/bold]"
        )
        try:
            body = renderer.render(
                stack.template_id, build_context(config, stack, env_name)
            )
            result = deployer.deploy(
                DeployRequest(
                    stack_name=stack_name,
                    template_body=body,
                    parameters=config.get_parameters(stack, env_name),
                    tags=config.get_tags(stack, env_name),
                    description=stack.description,
                )
            )
        except DeployError as exc:
            console.print(f"[red]✗ Deploy of {stack_name} failed: {exc}[/red]")
            raise SystemExit(1)

        if result.skipped:
            console.print(f"[dim]No changes to deploy for {stack_name}[/dim]")
            continue

        console.print(f"[green]✓ Deployed {stack_name}[/green]")
        table = outputs_table(result.stack) if result.stack else None
        if table is not None:
            console.print(table)
