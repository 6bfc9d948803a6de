"""
Watchdog configuration module.

Contains configuration for the probe/escalation loop: how often to probe,
how many consecutive failures open an escalation episode, and what happens
once every remediation tier has been tried.
"""

from pydantic import BaseModel, Field

__all__ = ["WatchdogConfig"]


class WatchdogConfig(BaseModel):
    """Configuration for the watchdog loop."""

    check_interval: float = Field(
        default=30.0,
        gt=0,
        le=3600.0,
        description="Seconds between scheduler ticks (health probes)",
    )
    failure_threshold: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Consecutive failed probes before remediation starts",
    )
    cooldown: float = Field(
        default=900.0,
        gt=0,
        description=(
            "Seconds of quiet after the ladder is exhausted. A fault that "
            "persists produces one notification per cooldown window."
        ),
    )
    reset_on_exhaustion: bool = Field(
        default=True,
        description=(
            "After the last tier fails: reset the failure count and cool down "
            "(True), or keep the count and rerun the ladder on the next failed "
            "probe with no cooldown (False)"
        ),
    )
    probe_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Outer bound on a whole probe, on top of per-check timeouts",
    )
