"""
Audio watchdog.

Probes the audio server on a fixed interval and, once enough consecutive
probes fail, walks the remediation ladder: invoke a tier, let it settle,
re-probe, and move to the next tier only if the server is still unhealthy.
When the last tier fails the operator is notified and the watchdog cools
down.

Anti-flapping: the failure count goes back to zero both after a repair
works and after the ladder is exhausted. With the default
``reset_on_exhaustion=True`` a fault that survives every tier produces a
single notification and then a cooldown; while the fault persists the
operator hears about it once per cooldown window, not on every tick.
``reset_on_exhaustion=False`` instead keeps the count, skips the cooldown
and reruns the ladder on the next failed probe, notifying once per episode.

Usage:
    watchdog = Watchdog(probe, ladder, config, notifier=notifier)
    watchdog.install_signal_handlers()
    await watchdog.run()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from pwguard.config.watchdog import WatchdogConfig
from pwguard.errors import ConfigurationError
from pwguard.journal import TransitionEvent, TransitionJournal
from pwguard.notifications import NotificationSink, Severity, deliver
from pwguard.probe.models import HealthCheckResult, Probe
from pwguard.remediation.ladder import RemediationLadder, TierOutcome

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]


class WatchdogPhase(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    ESCALATING = "escalating"
    COOLING_DOWN = "cooling_down"


@dataclass
class WatchdogState:
    """Where the current escalation episode stands. Owned by one Watchdog."""

    phase: WatchdogPhase = WatchdogPhase.HEALTHY
    consecutive_failures: int = 0
    current_tier: int | None = None
    cooldown_until: datetime | None = None
    episode_notified: bool = False

    def describe(self) -> str:
        if self.phase is WatchdogPhase.DEGRADED:
            return f"degraded({self.consecutive_failures})"
        if self.phase is WatchdogPhase.ESCALATING:
            return f"escalating({self.current_tier})"
        return self.phase.value


class Watchdog:
    """
    Probe/escalate/cool-down loop for the audio server.

    Features:
    - Consecutive failure threshold before remediation
    - Ordered remediation tiers with a re-probe after each
    - One notification when every tier has failed, then a cooldown
    - Graceful shutdown between operations
    """

    def __init__(
        self,
        probe: Probe,
        ladder: RemediationLadder,
        config: WatchdogConfig | None = None,
        notifier: NotificationSink | None = None,
        journal: TransitionJournal | None = None,
        clock: Clock | None = None,
        sleep: SleepFn | None = None,
    ):
        self.config = config or WatchdogConfig()
        self._validate(ladder)

        self.probe = probe
        max_duration = getattr(probe, "max_duration", None)
        if isinstance(max_duration, float | int) and max_duration > self.config.probe_timeout:
            logger.warning(
                f"probe_timeout ({self.config.probe_timeout:g}s) is shorter than the probe's "
                f"own bound ({max_duration:g}s); late checks will be cut off"
            )
        self.ladder = ladder
        self.notifier = notifier
        self.journal = journal or TransitionJournal()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep or self._wait_for_shutdown

        # State tracking
        self.state = WatchdogState()
        self.notifications_sent = 0
        self._label = self.state.describe()
        self._stop_event = asyncio.Event()

    def _validate(self, ladder: RemediationLadder) -> None:
        if ladder is None or len(ladder) < 1:
            raise ConfigurationError("remediation ladder needs at least one tier")
        if self.config.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be at least 1")
        for field in ("check_interval", "cooldown", "probe_timeout"):
            if getattr(self.config, field) <= 0:
                raise ConfigurationError(f"{field} must be positive")

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def request_shutdown(self) -> None:
        """Ask the loop to stop after the current operation."""
        if not self._stop_event.is_set():
            logger.info("Shutdown requested, stopping watchdog")
            self._stop_event.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_shutdown)

    async def _wait_for_shutdown(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until shutdown is requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def run(self) -> None:
        """Main watchdog loop. Returns only after request_shutdown()."""
        logger.info(
            f"Watchdog starting: interval={self.config.check_interval:g}s, "
            f"threshold={self.config.failure_threshold}, tiers={len(self.ladder)}, "
            f"cooldown={self.config.cooldown:g}s"
        )
        try:
            while not self.stopping:
                try:
                    await self.tick()
                except Exception as e:
                    logger.error(f"Watchdog tick failed: {e}", exc_info=True)

                if self.stopping:
                    break
                await self._sleep(self.config.check_interval)
        finally:
            logger.info("Watchdog stopped")

    async def tick(self) -> WatchdogPhase:
        """Advance the state machine by one scheduler tick."""
        state = self.state

        if state.phase is WatchdogPhase.COOLING_DOWN:
            now = self._clock()
            if state.cooldown_until is not None and now < state.cooldown_until:
                remaining = (state.cooldown_until - now).total_seconds()
                logger.debug(f"Cooldown active, {remaining:.0f}s remaining")
                return state.phase
            state.cooldown_until = None
            state.consecutive_failures = 0
            state.current_tier = None
            state.episode_notified = False
            self._transition(WatchdogPhase.HEALTHY, "cooldown elapsed, resuming probes")

        if self.stopping:
            return state.phase

        result = await self._probe()
        if result.healthy:
            self._mark_healthy("health check passed")
            return state.phase

        state.consecutive_failures += 1
        threshold = self.config.failure_threshold
        logger.warning(f"Health check failed ({state.consecutive_failures}/{threshold})")

        if state.consecutive_failures < threshold:
            self._transition(WatchdogPhase.DEGRADED, result.summary())
            return state.phase

        logger.warning(
            f"Failure threshold reached after {state.consecutive_failures} consecutive failures"
        )
        await self._escalate(result)
        return state.phase

    async def _probe(self) -> HealthCheckResult:
        try:
            return await asyncio.wait_for(self.probe.probe(), timeout=self.config.probe_timeout)
        except TimeoutError:
            logger.error(f"Health probe hung, abandoned after {self.config.probe_timeout:g}s")
            return HealthCheckResult.from_reasons(
                [f"health probe timed out after {self.config.probe_timeout:g}s"]
            )
        except Exception as e:
            logger.error(f"Health probe raised: {e}", exc_info=True)
            return HealthCheckResult.from_reasons([f"health probe errored: {e}"])

    async def _escalate(self, result: HealthCheckResult) -> None:
        state = self.state
        outcomes: list[TierOutcome] = []

        for tier in self.ladder:
            if self.stopping:
                logger.info("Shutdown requested, abandoning escalation")
                return

            state.current_tier = tier.ordinal
            self._transition(
                WatchdogPhase.ESCALATING, f"invoking tier {tier.ordinal} ({tier.name})"
            )

            # Self-reported success is not trusted; the re-probe decides
            outcomes.append(await self.ladder.invoke(tier))
            await self._sleep(tier.settle_duration)
            if self.stopping:
                logger.info("Shutdown requested, skipping re-probe")
                return

            result = await self._probe()
            if result.healthy:
                self._mark_healthy(f"recovered after tier {tier.ordinal} ({tier.name})")
                return
            logger.warning(
                f"Tier {tier.ordinal} ({tier.name}) did not restore health: {result.summary()}"
            )

        await self._exhausted(result, outcomes)

    async def _exhausted(self, result: HealthCheckResult, outcomes: list[TierOutcome]) -> None:
        state = self.state
        summary = self._diagnostic_summary(result, outcomes)
        logger.error(f"Remediation ladder exhausted: {result.summary()}")

        if self.config.reset_on_exhaustion:
            await self._notify(summary)
            state.consecutive_failures = 0
            state.current_tier = None
            state.cooldown_until = self._clock() + timedelta(seconds=self.config.cooldown)
            self._transition(
                WatchdogPhase.COOLING_DOWN,
                f"ladder exhausted, cooling down until {state.cooldown_until.isoformat()}",
            )
            return

        if not state.episode_notified:
            await self._notify(summary)
            state.episode_notified = True
        state.current_tier = None
        self._transition(
            WatchdogPhase.DEGRADED, "ladder exhausted, retrying on the next failed probe"
        )

    async def _notify(self, message: str) -> None:
        self.notifications_sent += 1
        await deliver(self.notifier, Severity.CRITICAL, message)

    def _diagnostic_summary(self, result: HealthCheckResult, outcomes: list[TierOutcome]) -> str:
        lines = [f"Audio is still unhealthy after {len(outcomes)} remediation tier(s)."]
        lines.extend(f"- {reason}" for reason in result.reasons)
        lines.append("Attempts:")
        for outcome in outcomes:
            status = "timed out" if outcome.timed_out else ("ok" if outcome.success else "failed")
            lines.append(
                f"  {outcome.tier.ordinal}. {outcome.tier.name}: {status}"
                + (f" ({outcome.detail})" if outcome.detail else "")
            )
        if self.config.reset_on_exhaustion:
            lines.append(
                f"No further automatic repairs for {self.config.cooldown:g}s; "
                "manual attention needed."
            )
        return "\n".join(lines)

    def _mark_healthy(self, reason: str) -> None:
        state = self.state
        if state.consecutive_failures:
            logger.info(
                f"Health check passed, resetting failure counter (was {state.consecutive_failures})"
            )
        state.consecutive_failures = 0
        state.current_tier = None
        state.episode_notified = False
        self._transition(WatchdogPhase.HEALTHY, reason)

    def _transition(self, phase: WatchdogPhase, reason: str) -> None:
        self.state.phase = phase
        label = self.state.describe()
        if label == self._label:
            return
        self.journal.record(
            TransitionEvent(
                previous=self._label,
                current=label,
                reason=reason,
                timestamp=self._clock(),
                consecutive_failures=self.state.consecutive_failures,
                current_tier=self.state.current_tier,
            )
        )
        self._label = label
