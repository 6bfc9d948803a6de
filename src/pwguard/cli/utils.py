"""Helpers shared by CLI commands."""

from typing import Any

import click

from pwguard.config.app import PwguardConfig, load_config
from pwguard.errors import ConfigurationError


def load_cli_config(ctx: click.Context, overrides: dict[str, Any] | None = None) -> PwguardConfig:
    """Load config for a command, turning validation errors into a usage error."""
    try:
        return load_config(ctx.obj.get("config_path"), cli_overrides=overrides)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
