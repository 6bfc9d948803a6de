"""Typed records returned by the audio state collector and the health probe."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol


class SinkState(str, Enum):
    """Sink states as reported by the audio server."""

    RUNNING = "running"
    IDLE = "idle"
    SUSPENDED = "suspended"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> SinkState:
        value = str(raw or "").strip().lower()
        if value in ("invalid", "invalid_state"):
            return cls.ERROR
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Sink:
    """An audio output endpoint."""

    name: str
    state: SinkState = SinkState.UNKNOWN
    bus: str | None = None
    driver: str | None = None
    description: str | None = None

    @property
    def is_usb(self) -> bool:
        return self.bus == "usb" or ".usb-" in self.name

    def is_placeholder(self, markers: list[str] | tuple[str, ...]) -> bool:
        return any(marker and marker in self.name for marker in markers)

    def is_hardware(self, markers: list[str] | tuple[str, ...]) -> bool:
        return self.name.startswith("alsa_output") and not self.is_placeholder(markers)


@dataclass(frozen=True)
class ServerInfo:
    """Identity of the audio server and its default sink."""

    server_name: str
    server_version: str | None = None
    default_sink: str | None = None


@dataclass(frozen=True)
class LogEntry:
    """One journal record."""

    timestamp: datetime
    unit: str
    priority: int | None
    message: str


@dataclass(frozen=True)
class HealthCheckResult:
    """Verdict of one probe. Reasons are empty when healthy."""

    healthy: bool
    reasons: tuple[str, ...] = ()
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration: float = 0.0

    @classmethod
    def from_reasons(cls, reasons: list[str], duration: float = 0.0) -> HealthCheckResult:
        return cls(healthy=not reasons, reasons=tuple(reasons), duration=duration)

    def summary(self) -> str:
        if self.healthy:
            return "healthy"
        return "; ".join(self.reasons)


class AudioStateCollector(Protocol):
    """Structured, timeout-bounded queries against the audio server."""

    async def server_info(self, timeout: float) -> ServerInfo: ...

    async def list_sinks(self, timeout: float) -> list[Sink]: ...

    async def process_alive(self, name: str, timeout: float) -> bool: ...

    async def query_sink(self, name: str, timeout: float) -> bool: ...

    async def recent_errors(
        self,
        units: list[str],
        window_seconds: float,
        patterns: list[str],
        timeout: float,
    ) -> list[LogEntry]: ...


class Probe(Protocol):
    """Anything the watchdog can probe."""

    async def probe(self) -> HealthCheckResult: ...
