"""
Watchdog commands: run the loop, probe once, show the ladder.
"""

import asyncio
import json

import click

from pwguard import runner
from pwguard.remediation.ladder import build_ladder

from .utils import load_cli_config


@click.command()
@click.option("--interval", type=float, help="Seconds between health checks")
@click.option("--threshold", type=int, help="Consecutive failures before remediation")
@click.option("--cooldown", type=float, help="Seconds of quiet after the ladder is exhausted")
@click.option(
    "--keep-escalating",
    is_flag=True,
    default=False,
    help="Rerun the ladder on the next failure instead of cooling down",
)
@click.pass_context
def run(
    ctx: click.Context,
    interval: float | None,
    threshold: int | None,
    cooldown: float | None,
    keep_escalating: bool,
) -> None:
    """Run the watchdog in the foreground until SIGTERM/SIGINT."""
    overrides = {
        "watchdog.check_interval": interval,
        "watchdog.failure_threshold": threshold,
        "watchdog.cooldown": cooldown,
        "watchdog.reset_on_exhaustion": False if keep_escalating else None,
    }
    # Validate before handing over so bad flags fail fast with a usage error
    load_cli_config(ctx, overrides)
    runner.main(
        config_path=ctx.obj.get("config_path"),
        verbose=ctx.obj.get("verbose", False),
        cli_overrides=overrides,
    )


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def probe(ctx: click.Context, as_json: bool) -> None:
    """Run the health check battery once. Exits 1 when unhealthy."""
    config = load_cli_config(ctx)
    result = asyncio.run(runner.build_probe(config).probe())

    if as_json:
        click.echo(
            json.dumps(
                {
                    "healthy": result.healthy,
                    "reasons": list(result.reasons),
                    "checked_at": result.checked_at.isoformat(),
                    "duration": round(result.duration, 3),
                }
            )
        )
    elif result.healthy:
        click.echo(f"healthy ({result.duration:.2f}s)")
    else:
        click.echo(f"unhealthy ({result.duration:.2f}s):")
        for reason in result.reasons:
            click.echo(f"  - {reason}")

    if not result.healthy:
        ctx.exit(1)


@click.command()
@click.pass_context
def ladder(ctx: click.Context) -> None:
    """Show the configured remediation tiers."""
    config = load_cli_config(ctx)
    for tier in build_ladder(config.remediation).describe():
        click.echo(
            f"{tier['ordinal']}. {tier['name']} "
            f"(settle {tier['settle_seconds']:g}s, timeout {tier['timeout_seconds']:g}s)"
        )
