"""
Command-line interface for the Azure Stack Compute provider.

Usage:
    azurestack-compute [--log-level LEVEL] [--debug] COMMAND [ARGS]
"""

import click

from .commands import (
    apply,
    destroy,
    import_command,
    plan,
    refresh,
    resources,
    validate,
    version,
)
from .logging_config import configure_logging


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug output including the configuration summary",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, debug: bool) -> None:
    """Azure Stack Compute - plan and apply Compute resources on Azure Stack Hub."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = "DEBUG" if debug else log_level.upper()
    ctx.obj["debug"] = debug
    configure_logging()


cli.add_command(resources)
cli.add_command(validate)
cli.add_command(plan)
cli.add_command(apply)
cli.add_command(import_command, "import")
cli.add_command(refresh)
cli.add_command(destroy)
cli.add_command(version)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
