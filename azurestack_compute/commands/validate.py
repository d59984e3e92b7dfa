"""'validate' command: check a configuration document without contacting Azure."""

import click

from ..config import load_configuration
from ..engine import DependencyGraph, validate_graph
from ..exceptions import ProviderError
from .base import console, exit_with_error, exit_with_provider_error


@click.command("validate")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx: click.Context, config_path: str) -> None:
    """Validate CONFIG_PATH against the resource schemas.

    Checks the document shape, references between blocks, and every
    attribute of every block. No Azure credentials are needed.

    Examples:
        azurestack-compute validate main.tf.json
    """
    try:
        document = load_configuration(config_path)
        diagnostics = validate_graph(DependencyGraph(document))
    except ProviderError as e:
        exit_with_provider_error(e)
        return

    if diagnostics:
        for diagnostic in diagnostics:
            click.echo(f"  - {diagnostic}", err=True)
        exit_with_error(f"{len(diagnostics)} validation error(s) in {config_path}")

    console.print("[bold green]Success![/bold green] The configuration is valid.")
