"""Wires config into a running watchdog."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from pwguard.config.app import PwguardConfig, load_config
from pwguard.errors import ConfigurationError
from pwguard.journal import TransitionJournal
from pwguard.notifications import build_notifier
from pwguard.probe.collector import PactlCollector
from pwguard.probe.health import HealthProbe
from pwguard.remediation.ladder import build_ladder
from pwguard.utils.logging import setup_file_logging
from pwguard.watchdog import Watchdog

logger = logging.getLogger(__name__)


def build_probe(config: PwguardConfig) -> HealthProbe:
    return HealthProbe(PactlCollector(), config.probe)


def build_watchdog(config: PwguardConfig) -> Watchdog:
    """Assemble probe, ladder, notifier and journal from config."""
    return Watchdog(
        probe=build_probe(config),
        ladder=build_ladder(config.remediation),
        config=config.watchdog,
        notifier=build_notifier(config.notifications),
        journal=TransitionJournal(config.logging.journal_file),
    )


async def run_watchdog(config: PwguardConfig, verbose: bool = False) -> None:
    setup_file_logging(config.logging, verbose=verbose)
    watchdog = build_watchdog(config)
    watchdog.install_signal_handlers()
    await watchdog.run()


def main(
    config_path: Path | None = None,
    verbose: bool = False,
    cli_overrides: dict[str, Any] | None = None,
) -> None:
    try:
        config = load_config(config_path, cli_overrides=cli_overrides)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        asyncio.run(run_watchdog(config, verbose=verbose))
    except KeyboardInterrupt:
        sys.exit(0)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
