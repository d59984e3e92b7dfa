"""'version' command."""

import platform

import click
from azure.mgmt.compute import __version__ as compute_sdk_version

from .. import __version__
from .base import console


@click.command("version")
def version() -> None:
    """Show the provider, SDK and Python versions."""
    console.print(f"azurestack-compute {__version__}", highlight=False)
    console.print(f"  azure-mgmt-compute {compute_sdk_version}", highlight=False)
    console.print(f"  Python {platform.python_version()}", highlight=False)
