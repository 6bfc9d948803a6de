"""
Health probe for the audio routing service.

Runs a fixed battery of independent checks, each under its own time
bound, and folds every failing reason into one HealthCheckResult. Checks
never short-circuit: when the server is wedged, the operator gets the
whole picture in one notification.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from pwguard.config.probe import ProbeConfig
from pwguard.errors import ProbeCheckFailure, ProbeTimeout
from pwguard.probe.models import AudioStateCollector, HealthCheckResult, Sink, SinkState

logger = logging.getLogger(__name__)

CheckFn = Callable[[], Awaitable[list[str]]]


class HealthProbe:
    """
    Read-only health check battery.

    Checks, in order:
    - audio server reachable
    - enough live hardware sinks
    - required processes alive
    - no sinks in error state
    - default sink set and not a placeholder
    - every USB sink answers a liveness query
    - no error patterns in the recent journal
    """

    def __init__(self, collector: AudioStateCollector, config: ProbeConfig | None = None):
        self.collector = collector
        self.config = config or ProbeConfig()

    @property
    def max_duration(self) -> float:
        """Upper bound on one probe: the sum of the per-check bounds."""
        return self.config.timeouts.total

    def _checks(self) -> list[tuple[str, CheckFn, float]]:
        t = self.config.timeouts
        return [
            ("reachability", self._check_reachable, t.reachability),
            ("hardware sinks", self._check_hardware_sinks, t.sinks),
            ("processes", self._check_processes, t.processes),
            ("sink errors", self._check_error_sinks, t.sinks),
            ("default sink", self._check_default_sink, t.default_sink),
            ("usb liveness", self._check_usb_sinks, t.usb_liveness),
            ("journal", self._check_journal, t.journal),
        ]

    async def probe(self) -> HealthCheckResult:
        """Run every check and aggregate the verdict."""
        started = time.monotonic()
        reasons: list[str] = []

        for name, check, timeout in self._checks():
            reasons.extend(await self._run_check(name, check, timeout))

        result = HealthCheckResult.from_reasons(reasons, duration=time.monotonic() - started)
        if result.healthy:
            logger.debug(f"Health probe passed in {result.duration:.2f}s")
        else:
            logger.warning(f"Health probe failed: {result.summary()}")
        return result

    async def _run_check(self, name: str, check: CheckFn, timeout: float) -> list[str]:
        try:
            try:
                return await asyncio.wait_for(check(), timeout=timeout)
            except TimeoutError as e:
                raise ProbeTimeout(name, timeout) from e
        except (ProbeTimeout, ProbeCheckFailure) as e:
            return [str(e)]
        except Exception as e:
            logger.debug(f"{name} check raised", exc_info=True)
            return [f"{name} check errored: {e}"]

    async def _sinks(self) -> list[Sink]:
        return await self.collector.list_sinks(self.config.timeouts.sinks)

    async def _check_reachable(self) -> list[str]:
        await self.collector.server_info(self.config.timeouts.reachability)
        return []

    async def _check_hardware_sinks(self) -> list[str]:
        markers = self.config.placeholder_sinks
        hardware = [s for s in await self._sinks() if s.is_hardware(markers)]
        if len(hardware) < self.config.min_hardware_sinks:
            return [
                f"only {len(hardware)} hardware sink(s) present "
                f"(expected at least {self.config.min_hardware_sinks})"
            ]
        return []

    async def _check_processes(self) -> list[str]:
        reasons = []
        for name in self.config.required_processes:
            if not await self.collector.process_alive(name, self.config.timeouts.processes):
                reasons.append(f"{name} is not running")
        return reasons

    async def _check_error_sinks(self) -> list[str]:
        errored = [s.name for s in await self._sinks() if s.state is SinkState.ERROR]
        if errored:
            return [f"{len(errored)} sink(s) in error state: {', '.join(errored)}"]
        return []

    async def _check_default_sink(self) -> list[str]:
        info = await self.collector.server_info(self.config.timeouts.default_sink)
        if not info.default_sink:
            return ["no default sink set"]
        if Sink(name=info.default_sink).is_placeholder(self.config.placeholder_sinks):
            return [f"default sink is a placeholder ({info.default_sink})"]
        return []

    async def _check_usb_sinks(self) -> list[str]:
        markers = self.config.placeholder_sinks
        per_sink = self.config.timeouts.usb_query
        usb_sinks = [s for s in await self._sinks() if s.is_usb and not s.is_placeholder(markers)]

        # Queried concurrently so several hung devices each get their own reason
        results = await asyncio.gather(
            *(self._query_usb_sink(sink, per_sink) for sink in usb_sinks)
        )
        return [reason for reason in results if reason]

    async def _query_usb_sink(self, sink: Sink, timeout: float) -> str | None:
        try:
            answered = await asyncio.wait_for(
                self.collector.query_sink(sink.name, timeout), timeout=timeout
            )
        except TimeoutError:
            return f"USB sink {sink.name} did not respond within {timeout:g}s"
        if not answered:
            return f"USB sink {sink.name} liveness query failed"
        return None

    async def _check_journal(self) -> list[str]:
        entries = await self.collector.recent_errors(
            self.config.journal_units,
            self.config.log_window_seconds,
            self.config.error_patterns,
            self.config.timeouts.journal,
        )
        if not entries:
            return []
        latest = max(entries, key=lambda e: e.timestamp)
        return [
            f"{len(entries)} error entr{'y' if len(entries) == 1 else 'ies'} in the "
            f"{', '.join(self.config.journal_units)} journal in the last "
            f"{self.config.log_window_seconds:g}s (latest: {latest.message})"
        ]
