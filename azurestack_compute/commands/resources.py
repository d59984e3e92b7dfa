"""'resources' command: list the supported resource and data source types."""

import click
from rich.table import Table

from ..handlers import KIND_DATA, KIND_RESOURCE, HandlerRegistry
from .base import console


@click.command("resources")
@click.pass_context
def resources(ctx: click.Context) -> None:
    """List supported resource and data source types.

    Examples:
        azurestack-compute resources
    """
    table = Table(title="Supported Types", show_header=True, header_style="bold magenta")
    table.add_column("Kind", style="cyan")
    table.add_column("Type", style="green", no_wrap=True)

    for kind in (KIND_RESOURCE, KIND_DATA):
        for handler_class in sorted(HandlerRegistry.get_all_handlers(), key=lambda h: h.__name__):
            if handler_class.KIND != kind:
                continue
            for terraform_type in sorted(handler_class.HANDLED_TYPES):
                table.add_row(kind, terraform_type)

    console.print(table)
