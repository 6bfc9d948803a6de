"""
Remediation ladder.

An immutable, ordered sequence of tiers. The ladder owns the hard time
bound on every invocation: whatever an action promises about its own
runtime, it is abandoned after ``timeout`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from pwguard.config.remediation import RemediationConfig
from pwguard.errors import (
    ConfigurationError,
    RemediationActionFailure,
    RemediationActionTimeout,
)
from pwguard.remediation.actions import RemediationAction, SleepFn, create_action

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemediationTier:
    """One escalation level: an action, how long to let it settle, and its hard bound."""

    ordinal: int
    name: str
    action: RemediationAction
    settle_duration: float
    timeout: float


@dataclass(frozen=True)
class TierOutcome:
    """What happened when a tier's action was invoked."""

    tier: RemediationTier
    success: bool
    detail: str
    timed_out: bool = False
    duration: float = 0.0


class RemediationLadder(Sequence[RemediationTier]):
    """Ordered tiers, least invasive first. The last tier is terminal."""

    def __init__(self, tiers: Sequence[RemediationTier]):
        tiers = tuple(tiers)
        if not tiers:
            raise ConfigurationError("remediation ladder needs at least one tier")
        for index, tier in enumerate(tiers):
            if tier.ordinal != index:
                raise ConfigurationError(
                    f"tier {tier.name!r} has ordinal {tier.ordinal}, expected {index}"
                )
            if tier.settle_duration <= 0 or tier.timeout <= 0:
                raise ConfigurationError(
                    f"tier {tier.name!r} needs positive settle and timeout durations"
                )
        self._tiers = tiers

    @classmethod
    def from_actions(
        cls,
        actions: Sequence[tuple[RemediationAction, float, float]],
    ) -> RemediationLadder:
        """Build a ladder from (action, settle_duration, timeout) triples."""
        return cls(
            [
                RemediationTier(
                    ordinal=index,
                    name=getattr(action, "name", f"tier-{index}"),
                    action=action,
                    settle_duration=settle,
                    timeout=timeout,
                )
                for index, (action, settle, timeout) in enumerate(actions)
            ]
        )

    def __getitem__(self, index):  # type: ignore[override]
        return self._tiers[index]

    def __len__(self) -> int:
        return len(self._tiers)

    def __iter__(self) -> Iterator[RemediationTier]:
        return iter(self._tiers)

    def is_last(self, tier: RemediationTier) -> bool:
        return tier.ordinal == len(self._tiers) - 1

    async def invoke(self, tier: RemediationTier) -> TierOutcome:
        """
        Invoke one tier's action under its hard timeout.

        Never raises (except on cancellation): failures, timeouts and
        unexpected errors all come back as an unsuccessful TierOutcome.
        """
        logger.info(f"Invoking remediation tier {tier.ordinal} ({tier.name})")
        started = time.monotonic()

        def outcome(success: bool, detail: str, timed_out: bool = False) -> TierOutcome:
            return TierOutcome(
                tier=tier,
                success=success,
                detail=detail,
                timed_out=timed_out,
                duration=time.monotonic() - started,
            )

        try:
            result = await asyncio.wait_for(tier.action.invoke(), timeout=tier.timeout)
        except TimeoutError:
            logger.error(
                f"Tier {tier.ordinal} ({tier.name}) hung, abandoned after {tier.timeout:g}s"
            )
            return outcome(False, f"timed out after {tier.timeout:g}s", timed_out=True)
        except RemediationActionTimeout as e:
            logger.error(f"Tier {tier.ordinal} ({tier.name}) timed out: {e}")
            return outcome(False, str(e), timed_out=True)
        except RemediationActionFailure as e:
            logger.error(f"Tier {tier.ordinal} ({tier.name}) failed: {e}")
            return outcome(False, str(e))
        except Exception as e:
            logger.error(f"Tier {tier.ordinal} ({tier.name}) raised: {e}", exc_info=True)
            return outcome(False, f"unexpected error: {e}")

        if result.success:
            logger.info(f"Tier {tier.ordinal} ({tier.name}) reported success: {result.detail}")
        else:
            logger.warning(f"Tier {tier.ordinal} ({tier.name}) reported failure: {result.detail}")
        return outcome(result.success, result.detail)

    def describe(self) -> list[dict[str, object]]:
        return [
            {
                "ordinal": tier.ordinal,
                "name": tier.name,
                "settle_seconds": tier.settle_duration,
                "timeout_seconds": tier.timeout,
            }
            for tier in self._tiers
        ]


def build_ladder(config: RemediationConfig, sleep: SleepFn = asyncio.sleep) -> RemediationLadder:
    """Build the ladder described by the remediation config."""
    return RemediationLadder(
        [
            RemediationTier(
                ordinal=index,
                name=tier.label,
                action=create_action(tier, config, sleep=sleep),
                settle_duration=tier.settle_seconds,
                timeout=tier.timeout_seconds,
            )
            for index, tier in enumerate(config.tiers)
        ]
    )
