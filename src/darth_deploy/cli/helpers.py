"""Shared CLI helpers."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..aws.cloudformation import CloudFormation, Stack
from ..aws.ecs import ECS
from ..config.loader import find_config, load_config
from ..config.models import ProjectConfig
from ..deploy.orchestrator import Deployer

console = Console()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )
    # botocore is very chatty at DEBUG.
    logging.getLogger("botocore").setLevel(logging.WARNING)


def require_config() -> tuple[ProjectConfig, Path]:
    """Load config or exit with an error."""
    try:
        config_path = find_config()
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)
    try:
        config = load_config(config_path)
    except (ValueError, KeyError) as exc:
        console.print(f"[red]Invalid {config_path.name}: {exc}[/red]")
        sys.exit(1)
    return config, config_path.parent


def require_env(config: ProjectConfig, env_name: str) -> None:
    if env_name not in config.environments:
        console.print(
            f"[red]Environment '{env_name}' not found in darth-deploy.toml. "
            f"Available: {', '.join(config.environments)}[/red]"
        )
        raise SystemExit(1)


def make_deployer(
    config: ProjectConfig, env_name: str, *, show_progress: bool = True
) -> Deployer:
    region = config.get_region(env_name)
    settings = config.deploy
    return Deployer(
        CloudFormation.for_region(region),
        console=console if show_progress else None,
        rollouts=ECS.for_region(region),
        poll_interval=settings.poll_interval_seconds,
        stack_poll_interval=settings.stack_poll_interval_seconds,
        change_set_prefix=settings.change_set_prefix,
        change_set_wait_delay=settings.change_set_wait_delay_seconds,
        change_set_wait_max_attempts=settings.change_set_wait_max_attempts,
    )


def outputs_table(stack: Stack) -> Table | None:
    if not stack.outputs:
        return None
    table = Table(title=f"Outputs of {stack.name}", title_justify="left")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in sorted(stack.outputs.items()):
        table.add_row(key, value)
    return table
