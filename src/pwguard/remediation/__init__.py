"""Remediation: concrete repair actions and the ordered ladder that runs them."""

from pwguard.remediation.actions import (
    ActionResult,
    CommandAction,
    FullRebuildAction,
    KillAndCleanupAction,
    RemediationAction,
    RestartServicesAction,
    UsbReauthorizeAction,
    create_action,
)
from pwguard.remediation.ladder import (
    RemediationLadder,
    RemediationTier,
    TierOutcome,
    build_ladder,
)

__all__ = [
    "ActionResult",
    "CommandAction",
    "FullRebuildAction",
    "KillAndCleanupAction",
    "RemediationAction",
    "RemediationLadder",
    "RemediationTier",
    "RestartServicesAction",
    "TierOutcome",
    "UsbReauthorizeAction",
    "build_ladder",
    "create_action",
]
