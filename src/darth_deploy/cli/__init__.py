"""darth-deploy command-line interface."""

from __future__ import annotations

import click

from .. import __version__
from .delete_cmd import delete
from .deploy_cmd import deploy
from .events_cmd import events
from .helpers import configure_logging
from .status_cmd import status


@click.group()
@click.version_option(__version__, prog_name="darth-deploy")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Deploy CloudFormation stacks through change sets with live progress."""
    configure_logging(verbose)


main.add_command(deploy)
main.add_command(delete)
main.add_command(events)
main.add_command(status)
