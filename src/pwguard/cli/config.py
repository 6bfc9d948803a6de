"""
Configuration commands.
"""

from pathlib import Path

import click
import yaml

from pwguard.config.app import default_config_path, generate_default_config

from .utils import load_cli_config


@click.group()
def config() -> None:
    """Manage the pwguard configuration file."""


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Write a config file populated with defaults."""
    path = Path(ctx.obj.get("config_path") or default_config_path()).expanduser()
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    generate_default_config(path)
    click.echo(f"Wrote default configuration to {path}")


@config.command("show")
@click.pass_context
def show(ctx: click.Context) -> None:
    """Print the effective configuration."""
    effective = load_cli_config(ctx)
    click.echo(
        yaml.safe_dump(
            effective.model_dump(mode="python", exclude_none=True),
            default_flow_style=False,
            sort_keys=False,
        ).rstrip()
    )
