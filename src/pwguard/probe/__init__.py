"""Health probing: typed collector queries and the check battery."""

from pwguard.probe.collector import PactlCollector
from pwguard.probe.health import HealthProbe
from pwguard.probe.models import (
    AudioStateCollector,
    HealthCheckResult,
    LogEntry,
    Probe,
    ServerInfo,
    Sink,
    SinkState,
)

__all__ = [
    "AudioStateCollector",
    "HealthCheckResult",
    "HealthProbe",
    "LogEntry",
    "PactlCollector",
    "Probe",
    "ServerInfo",
    "Sink",
    "SinkState",
]
