"""CLI commands.

Each module defines one or more click commands; ``cli.py`` registers them
with the main group.
"""

from .base import (
    CommandContext,
    command_context,
    exit_with_error,
    exit_with_provider_error,
)
from .lifecycle import apply, destroy, import_command, plan, refresh
from .resources import resources
from .validate import validate
from .version import version

__all__ = [
    "CommandContext",
    "apply",
    "command_context",
    "destroy",
    "exit_with_error",
    "exit_with_provider_error",
    "import_command",
    "plan",
    "refresh",
    "resources",
    "validate",
    "version",
]
