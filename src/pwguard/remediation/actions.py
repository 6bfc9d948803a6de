"""
Remediation actions.

Each action performs one repair against the audio stack and reports
ActionResult(success, detail). Success is only the action's own view; the
watchdog re-probes regardless. Every external command runs under
``step_timeout`` so a wedged systemctl or process lookup cannot stall an action.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import psutil

from pwguard.config.remediation import RemediationConfig, TierConfig
from pwguard.errors import RemediationActionFailure, RemediationActionTimeout
from pwguard.utils.process import CommandResult, run_command, stop_processes

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

# systemctl status exit code for a unit that does not exist
_UNIT_NOT_FOUND = 4

RUNTIME_PATTERNS = ("pipewire*", "pulse*", "pw-*")


@dataclass(frozen=True)
class ActionResult:
    """Self-reported outcome of one remediation action."""

    success: bool
    detail: str = ""


class RemediationAction(Protocol):
    """An opaque repair step."""

    name: str

    async def invoke(self) -> ActionResult: ...


def default_runtime_dir() -> Path:
    return Path(os.environ.get("XDG_RUNTIME_DIR") or f"/run/user/{os.getuid()}")


def default_state_dir() -> Path:
    return Path(os.environ.get("XDG_STATE_HOME") or Path.home() / ".local" / "state")


class CommandAction:
    """Runs one configured command; exit status 0 means success."""

    def __init__(self, argv: list[str], name: str | None = None, timeout: float = 60.0):
        if not argv:
            raise ValueError("CommandAction needs a command")
        self.argv = list(argv)
        self.name = name or Path(argv[0]).name
        self.timeout = timeout

    async def invoke(self) -> ActionResult:
        try:
            result = await run_command(self.argv, self.timeout)
        except TimeoutError as e:
            raise RemediationActionTimeout(
                f"{self.name} timed out after {self.timeout:g}s"
            ) from e
        except OSError as e:
            raise RemediationActionFailure(f"could not start {self.argv[0]}: {e}") from e

        if result.ok:
            return ActionResult(True, f"{self.name} exited 0")
        output = (result.stderr or result.stdout).strip().splitlines()
        tail = output[-1] if output else ""
        return ActionResult(False, f"{self.name} exited {result.returncode}: {tail}".rstrip(": "))


class AudioStackAction(ABC):
    """Shared plumbing for actions that drive systemd user units and the audio daemons."""

    name = "audio-stack"

    def __init__(
        self,
        services: list[str],
        processes: list[str],
        step_timeout: float = 15.0,
        runtime_dir: Path | None = None,
        state_dir: Path | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.services = list(services)
        self.processes = list(processes)
        self.step_timeout = step_timeout
        self.runtime_dir = runtime_dir or default_runtime_dir()
        self.state_dir = state_dir or default_state_dir()
        self._sleep = sleep
        self.uid = os.getuid()

    @abstractmethod
    async def invoke(self) -> ActionResult:
        """Perform the repair."""

    async def _run(self, argv: list[str]) -> CommandResult:
        try:
            return await run_command(argv, self.step_timeout)
        except TimeoutError as e:
            raise RemediationActionTimeout(
                f"{argv[0]} {argv[1] if len(argv) > 1 else ''} hung for {self.step_timeout:g}s"
            ) from e
        except OSError as e:
            raise RemediationActionFailure(f"could not start {argv[0]}: {e}") from e

    async def _systemctl(self, *args: str) -> CommandResult:
        return await self._run(["systemctl", "--user", *args])

    async def _existing_units(self, units: list[str] | None = None) -> list[str]:
        existing = []
        for unit in units if units is not None else self.services:
            result = await self._systemctl("--quiet", "status", unit)
            if result.returncode != _UNIT_NOT_FOUND:
                existing.append(unit)
        return existing

    async def _stop_processes(
        self, processes: list[str], grace: float, terminate: bool = True
    ) -> list[str]:
        try:
            stopped = await asyncio.wait_for(
                asyncio.to_thread(stop_processes, processes, self.uid, grace, terminate),
                timeout=self.step_timeout,
            )
        except TimeoutError as e:
            raise RemediationActionTimeout(
                f"stopping {', '.join(processes)} hung for {self.step_timeout:g}s"
            ) from e
        except psutil.Error as e:
            raise RemediationActionFailure(f"could not stop audio processes: {e}") from e
        if stopped:
            logger.info(f"Stopped processes: {', '.join(stopped)}")
        return stopped

    def _remove_runtime_entries(self) -> list[str]:
        removed = []
        for pattern in RUNTIME_PATTERNS:
            for path in self.runtime_dir.glob(pattern):
                if _remove_path(path):
                    removed.append(path.name)
        if removed:
            logger.info(f"Removed stale runtime entries under {self.runtime_dir}: {removed}")
        return removed


class RestartServicesAction(AudioStackAction):
    """Tier 0: restart whichever PipeWire user units exist."""

    name = "restart_services"

    async def invoke(self) -> ActionResult:
        units = await self._existing_units()
        if not units:
            return ActionResult(False, "no known PipeWire user units found")

        logger.info(f"Restarting user units: {', '.join(units)}")
        result = await self._systemctl("restart", *units)
        if not result.ok:
            return ActionResult(
                False, f"systemctl restart failed ({result.returncode}): {result.stderr.strip()}"
            )
        return ActionResult(True, f"restarted {', '.join(units)}")


class KillAndCleanupAction(AudioStackAction):
    """Tier 1: TERM then KILL the audio processes, drop stale sockets, start units."""

    name = "kill_and_cleanup"

    def __init__(self, *args, clean_wireplumber_state: bool = False, grace: float = 1.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.clean_wireplumber_state = clean_wireplumber_state
        self.grace = grace

    async def invoke(self) -> ActionResult:
        stopped = await self._stop_processes(self.processes, self.grace)

        removed = self._remove_runtime_entries()

        wireplumber_state = self.state_dir / "wireplumber"
        default_nodes = wireplumber_state / "default-nodes"
        # Missing or empty default-nodes usually means the state is already corrupt
        state_suspect = not default_nodes.exists() or default_nodes.stat().st_size == 0
        if self.clean_wireplumber_state or state_suspect:
            logger.info("Cleaning WirePlumber default node state")
            for state_file in ("default-nodes", "default-routes"):
                _remove_path(wireplumber_state / state_file)

        await self._sleep(self.grace)

        failed = []
        started = []
        for unit in await self._existing_units():
            result = await self._systemctl("start", unit)
            if result.ok:
                started.append(unit)
            else:
                logger.warning(f"systemctl start {unit} failed: {result.stderr.strip()}")
                failed.append(unit)

        detail = (
            f"stopped {', '.join(stopped) or 'no processes'}; "
            f"removed {len(removed)} runtime entries"
        )
        if started:
            detail += f"; started {', '.join(started)}"
        if failed:
            return ActionResult(False, f"{detail}; failed to start {', '.join(failed)}")
        return ActionResult(True, detail)


class FullRebuildAction(AudioStackAction):
    """Tier 2: kill everything, wipe all audio state, start from sockets, wait for the server."""

    name = "full_rebuild"

    EXTRA_PROCESSES = ("pipewire-media-session",)
    EXTRA_UNITS = ("pipewire-pulse.socket",)
    SOCKETS = ("pipewire.socket", "pipewire-pulse.socket")

    def __init__(
        self,
        *args,
        ready_attempts: int = 10,
        ready_interval: float = 2.0,
        grace: float = 2.0,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.ready_attempts = ready_attempts
        self.ready_interval = ready_interval
        self.grace = grace

    async def invoke(self) -> ActionResult:
        processes = list(dict.fromkeys([*self.processes, *self.EXTRA_PROCESSES]))
        await self._stop_processes(processes, self.grace, terminate=False)

        self._remove_runtime_entries()
        for state in ("wireplumber", "pipewire"):
            path = self.state_dir / state
            if path.exists():
                logger.info(f"Wiping {path}")
                _remove_path(path)

        units = list(dict.fromkeys([*self.services, *self.EXTRA_UNITS]))
        stop = await self._systemctl("stop", *units)
        if not stop.ok:
            logger.debug(f"systemctl stop reported {stop.returncode}: {stop.stderr.strip()}")
        await self._sleep(self.grace)

        start = await self._systemctl("start", *self.SOCKETS)
        if not start.ok:
            return ActionResult(
                False, f"could not start {', '.join(self.SOCKETS)}: {start.stderr.strip()}"
            )

        for attempt in range(1, self.ready_attempts + 1):
            result = await self._run(["pactl", "info"])
            if result.ok:
                return ActionResult(True, f"audio server answered after {attempt} attempt(s)")
            logger.debug(f"Waiting for audio server (attempt {attempt}/{self.ready_attempts})")
            await self._sleep(self.ready_interval)

        return ActionResult(
            False, f"audio server still not answering after {self.ready_attempts} attempts"
        )


class UsbReauthorizeAction:
    """Deauthorize and reauthorize matching USB devices, like a physical replug."""

    name = "usb_reauthorize"

    def __init__(
        self,
        usb_ids: list[str],
        sysfs_root: Path = Path("/sys/bus/usb/devices"),
        replug_delay: float = 2.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.usb_ids = {usb_id.lower() for usb_id in usb_ids}
        self.sysfs_root = sysfs_root
        self.replug_delay = replug_delay
        self._sleep = sleep

    def find_devices(self) -> list[Path]:
        matches = []
        if not self.sysfs_root.is_dir():
            return matches
        for device in sorted(self.sysfs_root.iterdir()):
            vendor = _read_attr(device / "idVendor")
            product = _read_attr(device / "idProduct")
            if vendor and product and f"{vendor}:{product}".lower() in self.usb_ids:
                matches.append(device)
        return matches

    async def invoke(self) -> ActionResult:
        devices = self.find_devices()
        if not devices:
            return ActionResult(False, f"no USB devices matching {', '.join(sorted(self.usb_ids))}")

        reset = []
        for device in devices:
            try:
                await asyncio.to_thread((device / "authorized").write_text, "0")
            except OSError as e:
                raise RemediationActionFailure(f"could not deauthorize {device.name}: {e}") from e

            try:
                await self._sleep(self.replug_delay)
            finally:
                # Written synchronously so a cancelled tier still plugs the device back in
                restored = self._reauthorize(device)
            if not restored:
                raise RemediationActionFailure(f"could not reauthorize {device.name}")

            product = _read_attr(device / "product") or device.name
            logger.info(f"Reauthorized USB device {product} ({device.name})")
            reset.append(device.name)

        return ActionResult(True, f"reauthorized {', '.join(reset)}")

    @staticmethod
    def _reauthorize(device: Path) -> bool:
        try:
            (device / "authorized").write_text("1")
        except OSError as e:
            logger.error(f"USB device {device.name} left deauthorized: {e}")
            return False
        return True


def create_action(
    tier: TierConfig,
    config: RemediationConfig,
    sleep: SleepFn = asyncio.sleep,
) -> RemediationAction:
    """Build the action a tier config names."""
    common = {
        "services": config.services,
        "processes": config.processes,
        "step_timeout": config.step_timeout,
        "sleep": sleep,
    }
    if tier.action == "restart_services":
        return RestartServicesAction(**common)
    if tier.action == "kill_and_cleanup":
        return KillAndCleanupAction(
            clean_wireplumber_state=config.clean_wireplumber_state, **common
        )
    if tier.action == "full_rebuild":
        return FullRebuildAction(
            ready_attempts=config.ready_attempts,
            ready_interval=config.ready_interval,
            **common,
        )
    if tier.action == "usb_reauthorize":
        return UsbReauthorizeAction(tier.usb_ids, sleep=sleep)
    if tier.action == "command":
        return CommandAction(tier.command, name=tier.name, timeout=tier.timeout_seconds)
    raise ValueError(f"Unknown remediation action: {tier.action}")


def _read_attr(path: Path) -> str | None:
    try:
        return path.read_text().strip()
    except OSError:
        return None


def _remove_path(path: Path) -> bool:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
        return False
