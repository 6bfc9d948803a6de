"""Pytest configuration and shared fixtures for pwguard tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fakes import FakeClock, FakeCollector, RecordingAction

from pwguard.config.probe import CheckTimeouts, ProbeConfig
from pwguard.config.watchdog import WatchdogConfig
from pwguard.remediation.ladder import RemediationLadder


@pytest.fixture
def temp_dir(tmp_path: Path) -> Iterator[Path]:
    """A temporary directory for test files."""
    yield tmp_path


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point PWGUARD_HOME at a temp dir so no test touches ~/.pwguard."""
    home = tmp_path / "pwguard-home"
    monkeypatch.setenv("PWGUARD_HOME", str(home))
    return home


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def call_log() -> list[str]:
    return []


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def watchdog_config() -> WatchdogConfig:
    return WatchdogConfig(
        check_interval=30.0,
        failure_threshold=3,
        cooldown=600.0,
        probe_timeout=5.0,
    )


@pytest.fixture
def three_tier_ladder(call_log: list[str]) -> RemediationLadder:
    return RemediationLadder.from_actions(
        [
            (RecordingAction("restart", call_log), 10.0, 30.0),
            (RecordingAction("kill", call_log), 10.0, 30.0),
            (RecordingAction("rebuild", call_log), 15.0, 60.0),
        ]
    )


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
def fast_probe_config() -> ProbeConfig:
    return ProbeConfig(
        timeouts=CheckTimeouts(
            reachability=0.05,
            sinks=0.05,
            processes=0.05,
            default_sink=0.05,
            usb_query=0.05,
            usb_liveness=0.5,
            journal=0.05,
        )
    )
