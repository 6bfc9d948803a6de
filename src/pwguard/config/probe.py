"""
Health probe configuration module.

Contains the thresholds and per-check time bounds used by HealthProbe.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

__all__ = ["CheckTimeouts", "ProbeConfig"]


class CheckTimeouts(BaseModel):
    """Per-check time bounds in seconds."""

    reachability: float = Field(default=5.0, gt=0, description="Server info round trip")
    sinks: float = Field(default=5.0, gt=0, description="Sink listing")
    processes: float = Field(default=3.0, gt=0, description="All process liveness lookups")
    default_sink: float = Field(default=5.0, gt=0, description="Default sink lookup")
    usb_query: float = Field(default=3.0, gt=0, description="Liveness query for one USB sink")
    usb_liveness: float = Field(
        default=15.0,
        gt=0,
        description="Whole USB liveness check (listing plus every per-sink query)",
    )
    journal: float = Field(default=5.0, gt=0, description="Journal scan")

    @property
    def total(self) -> float:
        """Worst case for one full probe; the sink listing runs in two checks."""
        return (
            self.reachability
            + self.sinks
            + self.processes
            + self.sinks
            + self.default_sink
            + self.usb_liveness
            + self.journal
        )

    @model_validator(mode="after")
    def check_usb_bounds(self) -> "CheckTimeouts":
        """A single USB query must fit inside the whole USB check."""
        if self.usb_query >= self.usb_liveness:
            raise ValueError(
                f"usb_query ({self.usb_query:g}s) must be shorter than "
                f"usb_liveness ({self.usb_liveness:g}s)"
            )
        return self


class ProbeConfig(BaseModel):
    """Configuration for the health check battery."""

    min_hardware_sinks: int = Field(
        default=2,
        ge=0,
        description="Minimum number of live hardware (ALSA) sinks",
    )
    required_processes: list[str] = Field(
        default_factory=lambda: ["pipewire", "wireplumber"],
        description="Process names that must be running for the current user",
    )
    placeholder_sinks: list[str] = Field(
        default_factory=lambda: ["auto_null", "dummy"],
        description="Sink name fragments that mark a placeholder (not a real device)",
    )
    journal_units: list[str] = Field(
        default_factory=lambda: ["wireplumber"],
        description="User units whose journal is scanned for errors",
    )
    error_patterns: list[str] = Field(
        default_factory=lambda: ["can't open control", "No such file"],
        description="Case-insensitive journal message fragments that count as errors",
    )
    log_window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Trailing window scanned for journal errors",
    )
    timeouts: CheckTimeouts = Field(
        default_factory=CheckTimeouts,
        description="Per-check time bounds",
    )

    @field_validator("required_processes", "journal_units")
    @classmethod
    def validate_names(cls, v: list[str]) -> list[str]:
        """Reject blank names."""
        if any(not name.strip() for name in v):
            raise ValueError("names must not be blank")
        return v
