"""
Exception taxonomy for pwguard.

Only ConfigurationError is fatal. Everything else is raised by a
collaborator and converted into data (a probe reason, a failed tier
outcome, a log line) at the boundary that calls it.
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "NotificationFailure",
    "ProbeCheckFailure",
    "ProbeTimeout",
    "PwguardError",
    "RemediationActionFailure",
    "RemediationActionTimeout",
]


class PwguardError(Exception):
    """Base class for pwguard errors."""


class ProbeTimeout(PwguardError):
    """A probe sub-check exceeded its time bound."""

    def __init__(self, check: str, timeout: float):
        self.check = check
        self.timeout = timeout
        super().__init__(f"{check} check timed out after {timeout:g}s")


class ProbeCheckFailure(PwguardError):
    """A probe sub-check returned an explicit negative result."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class RemediationActionFailure(PwguardError):
    """A remediation action could not complete."""


class RemediationActionTimeout(RemediationActionFailure):
    """A remediation action (or one of its steps) hung past its bound."""


class NotificationFailure(PwguardError):
    """An alert could not be delivered."""


class ConfigurationError(PwguardError, ValueError):
    """Invalid configuration detected at construction time."""
