"""Lifecycle commands.

This module provides the commands which talk to Azure Stack:
- 'plan': Show the changes needed to match the configuration
- 'apply': Make those changes
- 'import': Bring an existing object under management
- 'refresh': Update state from the remote objects
- 'destroy': Delete every managed object
"""

from typing import Optional

import click

from ..engine import ResourceState
from ..exceptions import ProviderError
from .base import (
    command_context,
    console,
    exit_with_provider_error,
    render_counts,
    render_plan,
)

state_option = click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False),
    help="State file path (defaults to AZURESTACK_STATE_FILE)",
)
parallelism_option = click.option(
    "--parallelism",
    type=click.IntRange(min=1),
    help="Maximum concurrent operations (defaults to ARM_PARALLELISM)",
)
refresh_option = click.option(
    "--refresh/--no-refresh",
    default=True,
    show_default=True,
    help="Read the remote objects before planning",
)
config_argument = click.argument("config_path", type=click.Path(exists=True, dir_okay=False))


@click.command("plan")
@config_argument
@state_option
@parallelism_option
@refresh_option
@click.pass_context
def plan(
    ctx: click.Context,
    config_path: str,
    state_path: Optional[str],
    parallelism: Optional[int],
    refresh: bool,
) -> None:
    """Show the changes required by CONFIG_PATH.

    Examples:
        azurestack-compute plan main.tf.json
        azurestack-compute plan main.tf.json --state prod.tfstate.json
    """
    try:
        provider = command_context(ctx).build_provider(config_path, state_path, parallelism)
        result = provider.plan(refresh=refresh)
    except ProviderError as e:
        exit_with_provider_error(e)
        return

    if not result.has_changes:
        console.print(
            "[bold green]No changes.[/bold green] Your infrastructure matches the configuration."
        )
        return
    render_plan(result)


@click.command("apply")
@config_argument
@state_option
@parallelism_option
@refresh_option
@click.option("--auto-approve", is_flag=True, help="Skip interactive approval of the plan")
@click.pass_context
def apply(
    ctx: click.Context,
    config_path: str,
    state_path: Optional[str],
    parallelism: Optional[int],
    refresh: bool,
    auto_approve: bool,
) -> None:
    """Create, update or delete objects to match CONFIG_PATH.

    Examples:
        azurestack-compute apply main.tf.json
        azurestack-compute apply main.tf.json --auto-approve
    """
    try:
        provider = command_context(ctx).build_provider(config_path, state_path, parallelism)
        result = provider.plan(refresh=refresh)
        if not result.has_changes:
            # data sources are still recorded
            provider.apply(result)
            console.print(
                "[bold green]No changes.[/bold green] Your infrastructure matches the configuration."
            )
            return

        render_plan(result)
        if not auto_approve and not click.confirm("\nDo you want to perform these actions?"):
            console.print("[yellow]Apply cancelled.[/yellow]")
            return

        counts = provider.apply(result)
    except ProviderError as e:
        exit_with_provider_error(e)
        return

    render_counts("Apply", counts)


@click.command("import")
@config_argument
@click.argument("address")
@click.argument("resource_id")
@state_option
@click.pass_context
def import_command(
    ctx: click.Context,
    config_path: str,
    address: str,
    resource_id: str,
    state_path: Optional[str],
) -> None:
    """Import RESOURCE_ID into state as ADDRESS.

    ADDRESS must have a resource block in CONFIG_PATH.

    Examples:
        azurestack-compute import main.tf.json azurestack_managed_disk.data \\
            /subscriptions/.../resourceGroups/rg/providers/Microsoft.Compute/disks/data
    """
    try:
        provider = command_context(ctx).build_provider(config_path, state_path)
        imported: ResourceState = provider.import_resource(address, resource_id)
    except ProviderError as e:
        exit_with_provider_error(e)
        return

    console.print(f"[green]{address}: Import prepared![/green]", highlight=False)
    console.print(f"  Imported {imported.type} with ID {imported.id}", highlight=False)
    console.print("[bold green]Import successful![/bold green]")


@click.command("refresh")
@config_argument
@state_option
@parallelism_option
@click.pass_context
def refresh(
    ctx: click.Context,
    config_path: str,
    state_path: Optional[str],
    parallelism: Optional[int],
) -> None:
    """Update state from the remote objects.

    Objects which no longer exist are removed from state.
    """
    try:
        provider = command_context(ctx).build_provider(config_path, state_path, parallelism)
        removed = provider.refresh()
    except ProviderError as e:
        exit_with_provider_error(e)
        return

    for address in removed:
        console.print(f"[yellow]{address} no longer exists and was removed from state[/yellow]")
    console.print(
        f"[bold green]Refresh complete![/bold green] "
        f"{len(provider.state.addresses())} object(s) in state.",
        highlight=False,
    )


@click.command("destroy")
@config_argument
@state_option
@parallelism_option
@click.option("--auto-approve", is_flag=True, help="Skip interactive approval")
@click.pass_context
def destroy(
    ctx: click.Context,
    config_path: str,
    state_path: Optional[str],
    parallelism: Optional[int],
    auto_approve: bool,
) -> None:
    """Delete every object managed in state.

    Examples:
        azurestack-compute destroy main.tf.json --auto-approve
    """
    try:
        provider = command_context(ctx).build_provider(config_path, state_path, parallelism)
        result = provider.plan_destroy()
        if not result.changes:
            console.print("No objects need to be destroyed.")
            return

        render_plan(result)
        if not auto_approve and not click.confirm(
            "\nDo you really want to destroy all resources?"
        ):
            console.print("[yellow]Destroy cancelled.[/yellow]")
            return

        counts = provider.destroy(result)
    except ProviderError as e:
        exit_with_provider_error(e)
        return

    render_counts("Destroy", counts)
