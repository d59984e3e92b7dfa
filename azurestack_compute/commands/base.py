"""Base command infrastructure and shared utilities.

This module provides common utilities used across command modules:
- CommandContext for shared command execution context
- Helpers to load configuration and build a Provider
- Plan rendering with rich
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import click
from rich.console import Console

from ..clients import build_provider_context
from ..config import load_configuration
from ..config_manager import ProviderConfig, create_config_from_env, setup_logging
from ..engine import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_NO_OP,
    ACTION_READ,
    ACTION_REPLACE,
    ACTION_UPDATE,
    Plan,
    PlannedChange,
    Provider,
    SENSITIVE_VALUE,
    StateStore,
    mask_sensitive,
)
from ..exceptions import ProviderError, SchemaValidationError
from ..schema import UNKNOWN

console = Console()

logger = logging.getLogger(__name__)

ACTION_SYMBOLS = {
    ACTION_CREATE: ("+", "green", "will be created"),
    ACTION_UPDATE: ("~", "yellow", "will be updated in-place"),
    ACTION_REPLACE: ("-/+", "red", "must be replaced"),
    ACTION_DELETE: ("-", "red", "will be destroyed"),
    ACTION_READ: ("<=", "cyan", "will be read during apply"),
}


class CommandContext:
    """Shared context for command execution."""

    def __init__(
        self,
        ctx: click.Context,
        debug: bool = False,
        log_level: str = "INFO",
    ):
        self.click_ctx = ctx
        self.debug = debug
        self.log_level = log_level

    def get_config(
        self,
        subscription_id: Optional[str] = None,
        state_path: Optional[str] = None,
        parallelism: Optional[int] = None,
        require_azure: bool = True,
    ) -> ProviderConfig:
        """Get configuration from environment."""
        config = create_config_from_env(
            subscription_id=subscription_id,
            parallelism=parallelism,
            state_path=state_path,
            require_azure=require_azure,
        )
        config.logging.level = self.log_level
        setup_logging(config.logging)
        if self.debug:
            config.log_configuration_summary()
        return config

    def build_provider(
        self,
        config_path: str,
        state_path: Optional[str] = None,
        parallelism: Optional[int] = None,
    ) -> Provider:
        """Load a configuration document and connect a Provider for it."""
        document = load_configuration(config_path)
        config = self.get_config(
            subscription_id=document.provider_block.subscription_id or None,
            state_path=state_path,
            parallelism=parallelism,
        )
        context = build_provider_context(config.azure, document.features)
        return Provider(
            context,
            document,
            StateStore(config.engine.state_path),
            parallelism=config.engine.parallelism,
        )


def command_context(ctx: click.Context) -> CommandContext:
    """Create CommandContext from click context."""
    obj = ctx.obj or {}
    return CommandContext(
        ctx=ctx,
        debug=obj.get("debug", False),
        log_level=obj.get("log_level", "INFO"),
    )


def exit_with_error(message: str, code: int = 1) -> None:
    """Exit with error message."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def exit_with_provider_error(error: ProviderError) -> None:
    """Report a ProviderError (with each diagnostic on its own line) and exit."""
    if isinstance(error, SchemaValidationError) and error.diagnostics:
        click.echo("Error: Invalid configuration", err=True)
        for diagnostic in error.diagnostics:
            click.echo(f"  - {diagnostic}", err=True)
        sys.exit(1)
    if error.recovery_suggestion:
        click.echo(f"Error: {error.message}", err=True)
        click.echo(f"Suggestion: {error.recovery_suggestion}", err=True)
        sys.exit(1)
    exit_with_error(str(error))


def format_value(value: Any) -> str:
    if value is UNKNOWN:
        return "(known after apply)"
    if value == SENSITIVE_VALUE:
        return value
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _attribute_lines(change: PlannedChange) -> List[str]:
    before = mask_sensitive(change.before, change.sensitive) or {}
    after = mask_sensitive(change.after, change.sensitive) or {}

    lines = []
    if change.action in (ACTION_CREATE, ACTION_READ):
        for key, value in sorted(after.items()):
            if value in (None, "", [], {}):
                continue
            lines.append(f"      {key} = {format_value(value)}")
    elif change.action == ACTION_DELETE:
        for key, value in sorted(before.items()):
            if value in (None, "", [], {}):
                continue
            lines.append(f"      {key} = {format_value(value)}")
    else:
        for key in change.changed:
            marker = "  # forces replacement" if key in change.replaced_by else ""
            lines.append(
                f"      {key} = {format_value(before.get(key))} -> "
                f"{format_value(after.get(key))}{marker}"
            )
    return lines


def render_plan(plan: Plan) -> None:
    """Print a plan in Terraform's layout."""
    shown = [
        c
        for c in plan.changes
        if c.action != ACTION_NO_OP and not (c.action == ACTION_READ and c.after is not None)
    ]
    for change in shown:
        symbol, colour, description = ACTION_SYMBOLS[change.action]
        console.print(
            f"  [bold {colour}]{symbol}[/bold {colour}] [bold]{change.address}[/bold] "
            f"{description}",
            highlight=False,
        )
        for line in _attribute_lines(change):
            console.print(line, highlight=False, markup=False)
        console.print()

    counts = plan.summary()
    console.print(
        f"[bold]Plan:[/bold] {counts['add']} to add, {counts['change']} to change, "
        f"{counts['destroy']} to destroy.",
        highlight=False,
    )


def render_counts(verb: str, counts: Dict[str, int]) -> None:
    console.print(
        f"[bold green]{verb} complete![/bold green] Resources: {counts.get('add', 0)} added, "
        f"{counts.get('change', 0)} changed, {counts.get('destroy', 0)} destroyed.",
        highlight=False,
    )
