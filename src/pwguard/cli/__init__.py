"""
pwguard CLI entry point.
"""

from pathlib import Path

import click

from pwguard.utils.logging import setup_logging

from .config import config
from .watchdog import ladder, probe, run


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to custom configuration file",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug output",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """pwguard - watchdog and auto-repair for PipeWire audio."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    setup_logging(verbose=verbose)


# Register commands
cli.add_command(run)
cli.add_command(probe)
cli.add_command(ladder)
cli.add_command(config)
