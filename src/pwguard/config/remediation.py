"""
Remediation configuration module.

Contains the ladder definition: an ordered list of tiers, each naming a
built-in action (or a custom command) with its settle and timeout bounds.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

__all__ = ["ActionKind", "RemediationConfig", "TierConfig"]

ActionKind = Literal[
    "restart_services",
    "kill_and_cleanup",
    "full_rebuild",
    "usb_reauthorize",
    "command",
]


class TierConfig(BaseModel):
    """One escalation level."""

    action: ActionKind = Field(description="Built-in action to run at this tier")
    name: str | None = Field(
        default=None,
        description="Label used in logs and notifications (defaults to the action)",
    )
    settle_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Wait after the action before re-probing",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Hard bound on the action; it is abandoned after this",
    )
    command: list[str] = Field(
        default_factory=list,
        description="Program and arguments for the 'command' action",
    )
    usb_ids: list[str] = Field(
        default_factory=list,
        description="vendor:product ids for the 'usb_reauthorize' action",
    )

    @field_validator("usb_ids")
    @classmethod
    def validate_usb_ids(cls, v: list[str]) -> list[str]:
        """Require vvvv:pppp hex ids."""
        for usb_id in v:
            vendor, sep, product = usb_id.partition(":")
            if not sep or len(vendor) != 4 or len(product) != 4:
                raise ValueError(f"USB id must look like 19f7:0026, got {usb_id!r}")
            try:
                int(vendor, 16)
                int(product, 16)
            except ValueError as e:
                raise ValueError(f"USB id must be hexadecimal, got {usb_id!r}") from e
        return [usb_id.lower() for usb_id in v]

    @model_validator(mode="after")
    def validate_action_args(self) -> "TierConfig":
        """Check that actions needing arguments got them."""
        if self.action == "command" and not self.command:
            raise ValueError("'command' tiers need a non-empty command")
        if self.action == "usb_reauthorize" and not self.usb_ids:
            raise ValueError("'usb_reauthorize' tiers need at least one usb id")
        return self

    @property
    def label(self) -> str:
        return self.name or self.action


def _default_tiers() -> list[TierConfig]:
    return [
        TierConfig(action="restart_services", settle_seconds=10.0, timeout_seconds=60.0),
        TierConfig(action="kill_and_cleanup", settle_seconds=10.0, timeout_seconds=60.0),
        TierConfig(action="full_rebuild", settle_seconds=15.0, timeout_seconds=120.0),
    ]


class RemediationConfig(BaseModel):
    """Configuration for the remediation ladder and its actions."""

    tiers: list[TierConfig] = Field(
        default_factory=_default_tiers,
        description="Escalation ladder, least invasive first",
    )
    services: list[str] = Field(
        default_factory=lambda: [
            "pipewire.socket",
            "pipewire.service",
            "pipewire-pulse.service",
            "wireplumber.service",
        ],
        description="systemd user units restarted by the service tiers",
    )
    processes: list[str] = Field(
        default_factory=lambda: ["pipewire", "pipewire-pulse", "wireplumber"],
        description="Processes killed by the kill tiers",
    )
    clean_wireplumber_state: bool = Field(
        default=False,
        description="Always drop WirePlumber default-node state in kill_and_cleanup",
    )
    step_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Bound on each individual command an action runs",
    )
    ready_attempts: int = Field(
        default=10,
        ge=1,
        description="Server readiness polls after a full rebuild",
    )
    ready_interval: float = Field(
        default=2.0,
        gt=0,
        description="Seconds between readiness polls",
    )

    @field_validator("tiers")
    @classmethod
    def validate_tiers(cls, v: list[TierConfig]) -> list[TierConfig]:
        """The ladder needs at least one tier."""
        if not v:
            raise ValueError("remediation ladder needs at least one tier")
        return v
