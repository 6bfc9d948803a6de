"""Tests for the concrete remediation actions.

Commands are mocked at pwguard.remediation.actions.run_command and process
stopping at stop_processes; runtime, state and sysfs directories live under
tmp_path.
"""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from unittest.mock import AsyncMock, patch

import psutil
import pytest

from pwguard.config.remediation import RemediationConfig, TierConfig
from pwguard.errors import RemediationActionFailure, RemediationActionTimeout
from pwguard.remediation.actions import (
    AudioStackAction,
    CommandAction,
    FullRebuildAction,
    KillAndCleanupAction,
    RestartServicesAction,
    UsbReauthorizeAction,
    create_action,
)
from pwguard.utils.process import CommandResult

pytestmark = pytest.mark.unit

SERVICES = [
    "pipewire.socket",
    "pipewire.service",
    "pipewire-pulse.service",
    "wireplumber.service",
]
PROCESSES = ["pipewire", "pipewire-pulse", "wireplumber"]


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(argv=(), returncode=returncode, stdout=stdout, stderr=stderr)


class FakeSystem:
    """Answers run_command calls and records every argv."""

    def __init__(self, missing_units=(), failing=(), pactl_failures: int = 0):
        self.missing_units = set(missing_units)
        self.failing = set(failing)
        self.pactl_failures = pactl_failures
        self.calls: list[list[str]] = []

    async def __call__(self, argv, timeout, env=None) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        if argv[:4] == ["systemctl", "--user", "--quiet", "status"]:
            return completed(4 if argv[4] in self.missing_units else 0)
        if argv[:2] == ["pactl", "info"]:
            if self.pactl_failures:
                self.pactl_failures -= 1
                return completed(1, stderr="Connection refused")
            return completed()
        if " ".join(argv[2:]) in self.failing:
            return completed(1, stderr="Job failed")
        return completed()

    def commands(self, prefix: list[str]) -> list[list[str]]:
        return [c for c in self.calls if c[: len(prefix)] == prefix]


@pytest.fixture
def runtime_dir(tmp_path: Path) -> Path:
    path = tmp_path / "run"
    path.mkdir()
    (path / "pipewire-0").touch()
    (path / "pipewire-0.lock").touch()
    (path / "pw-screencast").touch()
    (path / "pulse").mkdir()
    (path / "pulse" / "native").touch()
    (path / "bus").touch()
    return path


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    path = tmp_path / "state"
    (path / "wireplumber").mkdir(parents=True)
    (path / "pipewire").mkdir()
    (path / "pipewire" / "media-session.d").mkdir()
    return path


@pytest.fixture
def stack_kwargs(runtime_dir, state_dir, fake_sleep) -> dict:
    return {
        "services": SERVICES,
        "processes": PROCESSES,
        "step_timeout": 5.0,
        "runtime_dir": runtime_dir,
        "state_dir": state_dir,
        "sleep": fake_sleep,
    }


def patch_run(system):
    return patch("pwguard.remediation.actions.run_command", new=AsyncMock(side_effect=system.__call__))


@pytest.fixture(autouse=True)
def stopper():
    """Stand-in for stop_processes so no test signals real processes."""

    def _stop(names, uid, grace, terminate=True):
        return list(names)

    with patch("pwguard.remediation.actions.stop_processes", side_effect=_stop) as stop:
        yield stop


class TestAudioStackAction:
    def test_is_abstract(self, stack_kwargs) -> None:
        with pytest.raises(TypeError):
            AudioStackAction(**stack_kwargs)  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_hung_process_stop(self, stack_kwargs, stopper) -> None:
        stopper.side_effect = lambda *args: time.sleep(0.5)
        stack_kwargs["step_timeout"] = 0.05

        with patch_run(FakeSystem()):
            with pytest.raises(RemediationActionTimeout, match="stopping pipewire"):
                await KillAndCleanupAction(**stack_kwargs).invoke()

    @pytest.mark.asyncio
    async def test_process_table_unreadable(self, stack_kwargs, stopper) -> None:
        stopper.side_effect = psutil.AccessDenied(1)

        with patch_run(FakeSystem()):
            with pytest.raises(RemediationActionFailure, match="could not stop audio processes"):
                await KillAndCleanupAction(**stack_kwargs).invoke()


class TestRestartServices:
    @pytest.mark.asyncio
    async def test_restarts_existing_units(self, stack_kwargs) -> None:
        system = FakeSystem(missing_units={"pipewire-pulse.service"})

        with patch_run(system):
            result = await RestartServicesAction(**stack_kwargs).invoke()

        assert result.success is True
        assert system.commands(["systemctl", "--user", "restart"]) == [
            [
                "systemctl",
                "--user",
                "restart",
                "pipewire.socket",
                "pipewire.service",
                "wireplumber.service",
            ]
        ]

    @pytest.mark.asyncio
    async def test_no_units(self, stack_kwargs) -> None:
        system = FakeSystem(missing_units=SERVICES)

        with patch_run(system):
            result = await RestartServicesAction(**stack_kwargs).invoke()

        assert result.success is False
        assert "no known PipeWire user units" in result.detail
        assert system.commands(["systemctl", "--user", "restart"]) == []

    @pytest.mark.asyncio
    async def test_restart_failure(self, stack_kwargs) -> None:
        system = FakeSystem(failing={"restart " + " ".join(SERVICES)})

        with patch_run(system):
            result = await RestartServicesAction(**stack_kwargs).invoke()

        assert result.success is False
        assert "Job failed" in result.detail

    @pytest.mark.asyncio
    async def test_hung_systemctl(self, stack_kwargs) -> None:
        with patch(
            "pwguard.remediation.actions.run_command",
            new=AsyncMock(side_effect=TimeoutError()),
        ):
            with pytest.raises(RemediationActionTimeout, match="systemctl --user hung for 5s"):
                await RestartServicesAction(**stack_kwargs).invoke()

    @pytest.mark.asyncio
    async def test_missing_systemctl(self, stack_kwargs) -> None:
        with patch(
            "pwguard.remediation.actions.run_command",
            new=AsyncMock(side_effect=FileNotFoundError("systemctl")),
        ):
            with pytest.raises(RemediationActionFailure, match="could not start systemctl"):
                await RestartServicesAction(**stack_kwargs).invoke()


class TestKillAndCleanup:
    @pytest.mark.asyncio
    async def test_kills_cleans_and_starts(
        self, stack_kwargs, runtime_dir, sleeps, stopper
    ) -> None:
        system = FakeSystem()

        with patch_run(system):
            result = await KillAndCleanupAction(**stack_kwargs).invoke()

        stopper.assert_called_once_with(PROCESSES, os.getuid(), 1.0, True)
        assert sorted(p.name for p in runtime_dir.iterdir()) == ["bus"]
        assert len(system.commands(["systemctl", "--user", "start"])) == len(SERVICES)
        assert result.success is True
        assert result.detail.startswith(
            "stopped pipewire, pipewire-pulse, wireplumber; removed 4 runtime entries"
        )
        assert sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_suspect_wireplumber_state_is_removed(self, stack_kwargs, state_dir) -> None:
        (state_dir / "wireplumber" / "default-nodes").write_text("")
        (state_dir / "wireplumber" / "default-routes").write_text("[routes]\n")
        (state_dir / "wireplumber" / "stream-properties").write_text("[props]\n")

        with patch_run(FakeSystem()):
            await KillAndCleanupAction(**stack_kwargs).invoke()

        remaining = sorted(p.name for p in (state_dir / "wireplumber").iterdir())
        assert remaining == ["stream-properties"]

    @pytest.mark.asyncio
    async def test_healthy_wireplumber_state_is_kept(self, stack_kwargs, state_dir) -> None:
        default_nodes = state_dir / "wireplumber" / "default-nodes"
        default_nodes.write_text("[default-nodes]\ndefault.configured.audio.sink=rode\n")

        with patch_run(FakeSystem()):
            await KillAndCleanupAction(**stack_kwargs).invoke()

        assert default_nodes.exists()

    @pytest.mark.asyncio
    async def test_forced_state_cleaning(self, stack_kwargs, state_dir) -> None:
        default_nodes = state_dir / "wireplumber" / "default-nodes"
        default_nodes.write_text("[default-nodes]\n")

        with patch_run(FakeSystem()):
            await KillAndCleanupAction(clean_wireplumber_state=True, **stack_kwargs).invoke()

        assert not default_nodes.exists()

    @pytest.mark.asyncio
    async def test_start_failure(self, stack_kwargs) -> None:
        system = FakeSystem(failing={"start wireplumber.service"})

        with patch_run(system):
            result = await KillAndCleanupAction(**stack_kwargs).invoke()

        assert result.success is False
        assert result.detail.endswith("failed to start wireplumber.service")


class TestFullRebuild:
    @pytest.mark.asyncio
    async def test_rebuilds_and_waits_for_server(
        self, stack_kwargs, runtime_dir, state_dir, sleeps, stopper
    ) -> None:
        system = FakeSystem(pactl_failures=2)

        with patch_run(system):
            result = await FullRebuildAction(ready_interval=0.5, **stack_kwargs).invoke()

        assert result.success is True
        assert result.detail == "audio server answered after 3 attempt(s)"

        stopper.assert_called_once_with(
            [*PROCESSES, "pipewire-media-session"], os.getuid(), 2.0, False
        )
        assert not (state_dir / "wireplumber").exists()
        assert not (state_dir / "pipewire").exists()
        assert sorted(p.name for p in runtime_dir.iterdir()) == ["bus"]
        assert system.commands(["systemctl", "--user", "stop"]) == [
            ["systemctl", "--user", "stop", *SERVICES, "pipewire-pulse.socket"]
        ]
        assert system.commands(["systemctl", "--user", "start"]) == [
            ["systemctl", "--user", "start", "pipewire.socket", "pipewire-pulse.socket"]
        ]
        assert sleeps == [2.0, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_server_never_answers(self, stack_kwargs) -> None:
        system = FakeSystem(pactl_failures=99)

        with patch_run(system):
            result = await FullRebuildAction(ready_attempts=3, **stack_kwargs).invoke()

        assert result.success is False
        assert "after 3 attempts" in result.detail
        assert len(system.commands(["pactl", "info"])) == 3

    @pytest.mark.asyncio
    async def test_sockets_fail_to_start(self, stack_kwargs) -> None:
        system = FakeSystem(failing={"start pipewire.socket pipewire-pulse.socket"})

        with patch_run(system):
            result = await FullRebuildAction(**stack_kwargs).invoke()

        assert result.success is False
        assert "could not start pipewire.socket" in result.detail
        assert system.commands(["pactl"]) == []


class TestUsbReauthorize:
    @pytest.fixture
    def sysfs(self, tmp_path: Path) -> Path:
        root = tmp_path / "usb"
        for name, vendor, product in [
            ("1-1", "19f7", "0026"),
            ("1-2", "046d", "c52b"),
            ("usb1", "1d6b", "0002"),
        ]:
            device = root / name
            device.mkdir(parents=True)
            (device / "idVendor").write_text(vendor + "\n")
            (device / "idProduct").write_text(product + "\n")
            (device / "authorized").write_text("1\n")
        (root / "1-1" / "product").write_text("RODECaster Pro II\n")
        (root / "1-0:1.0").mkdir()
        return root

    def test_find_devices(self, sysfs) -> None:
        action = UsbReauthorizeAction(["19F7:0026"], sysfs_root=sysfs)
        assert [d.name for d in action.find_devices()] == ["1-1"]

    @pytest.mark.asyncio
    async def test_toggles_authorized(self, sysfs) -> None:
        seen_during_replug = []

        async def sleep(seconds: float) -> None:
            seen_during_replug.append((sysfs / "1-1" / "authorized").read_text())

        result = await UsbReauthorizeAction(["19f7:0026"], sysfs_root=sysfs, sleep=sleep).invoke()

        assert result.success is True
        assert result.detail == "reauthorized 1-1"
        assert seen_during_replug == ["0"]
        assert (sysfs / "1-1" / "authorized").read_text() == "1"
        assert (sysfs / "1-2" / "authorized").read_text() == "1\n"

    @pytest.mark.asyncio
    async def test_no_matching_device(self, sysfs, fake_sleep) -> None:
        action = UsbReauthorizeAction(["dead:beef"], sysfs_root=sysfs, sleep=fake_sleep)
        result = await action.invoke()
        assert result.success is False
        assert "dead:beef" in result.detail

    @pytest.mark.asyncio
    async def test_missing_sysfs(self, tmp_path, fake_sleep) -> None:
        action = UsbReauthorizeAction(["19f7:0026"], sysfs_root=tmp_path / "nope", sleep=fake_sleep)
        result = await action.invoke()
        assert result.success is False

    @pytest.mark.asyncio
    async def test_unwritable_authorized(self, sysfs, fake_sleep) -> None:
        authorized = sysfs / "1-1" / "authorized"
        authorized.unlink()
        authorized.mkdir()

        action = UsbReauthorizeAction(["19f7:0026"], sysfs_root=sysfs, sleep=fake_sleep)
        with pytest.raises(RemediationActionFailure, match="could not deauthorize 1-1"):
            await action.invoke()

    @pytest.mark.asyncio
    async def test_timed_out_replug_reauthorizes_device(self, sysfs) -> None:
        async def stuck(seconds: float) -> None:
            await asyncio.Event().wait()

        action = UsbReauthorizeAction(["19f7:0026"], sysfs_root=sysfs, sleep=stuck)
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(action.invoke(), timeout=0.05)

        assert (sysfs / "1-1" / "authorized").read_text() == "1"

    @pytest.mark.asyncio
    async def test_failed_reauthorize_is_reported(self, sysfs, caplog) -> None:
        authorized = sysfs / "1-1" / "authorized"

        async def sleep(seconds: float) -> None:
            authorized.unlink()
            authorized.mkdir()

        action = UsbReauthorizeAction(["19f7:0026"], sysfs_root=sysfs, sleep=sleep)
        with pytest.raises(RemediationActionFailure, match="could not reauthorize 1-1"):
            await action.invoke()

        assert "USB device 1-1 left deauthorized" in caplog.text


class TestCommandAction:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        result = await CommandAction(["sh", "-c", "exit 0"]).invoke()
        assert result.success is True
        assert result.detail == "sh exited 0"

    @pytest.mark.asyncio
    async def test_failure_reports_last_output_line(self) -> None:
        action = CommandAction(["sh", "-c", "echo first >&2; echo last >&2; exit 2"], name="fix")
        result = await action.invoke()
        assert result.success is False
        assert result.detail == "fix exited 2: last"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        with pytest.raises(RemediationActionTimeout, match="timed out after 0.2s"):
            await CommandAction(["sleep", "30"], timeout=0.2).invoke()

    @pytest.mark.asyncio
    async def test_missing_program(self) -> None:
        with pytest.raises(RemediationActionFailure, match="could not start"):
            await CommandAction(["pwguard-definitely-not-installed"]).invoke()

    def test_empty_command_rejected(self) -> None:
        with pytest.raises(ValueError):
            CommandAction([])


class TestCreateAction:
    @pytest.mark.parametrize(
        ("tier", "expected"),
        [
            (TierConfig(action="restart_services"), RestartServicesAction),
            (TierConfig(action="kill_and_cleanup"), KillAndCleanupAction),
            (TierConfig(action="full_rebuild"), FullRebuildAction),
            (TierConfig(action="usb_reauthorize", usb_ids=["19f7:0026"]), UsbReauthorizeAction),
            (TierConfig(action="command", command=["true"]), CommandAction),
        ],
    )
    def test_builds_named_action(self, tier, expected) -> None:
        assert isinstance(create_action(tier, RemediationConfig()), expected)

    def test_passes_remediation_settings(self) -> None:
        config = RemediationConfig(
            processes=["pipewire"],
            step_timeout=3,
            clean_wireplumber_state=True,
        )
        action = create_action(TierConfig(action="kill_and_cleanup"), config)

        assert action.processes == ["pipewire"]
        assert action.step_timeout == 3
        assert action.clean_wireplumber_state is True
