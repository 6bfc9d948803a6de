"""
Audio state collector backed by pactl, journalctl and psutil.

Every query asks the tool for machine-readable output (``pactl
--format=json``, ``journalctl -o json``, psutil process records) and
returns typed records, so the probe never inspects command text.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import UTC, datetime
from typing import Any

import psutil

from pwguard.errors import ProbeCheckFailure
from pwguard.probe.models import LogEntry, ServerInfo, Sink, SinkState
from pwguard.utils.process import CommandResult, find_processes, run_command

logger = logging.getLogger(__name__)


class PactlCollector:
    """Queries PipeWire through its PulseAudio-compatible front end."""

    def __init__(
        self,
        pactl: str = "pactl",
        journalctl: str = "journalctl",
        uid: int | None = None,
    ):
        self.pactl = pactl
        self.journalctl = journalctl
        self.uid = os.getuid() if uid is None else uid

    async def server_info(self, timeout: float) -> ServerInfo:
        data = await self._pactl_json(["info"], timeout)
        if not isinstance(data, dict):
            raise ProbeCheckFailure("pactl info returned an unexpected payload")
        default_sink = data.get("default_sink_name") or None
        return ServerInfo(
            server_name=str(data.get("server_name", "")),
            server_version=data.get("server_version"),
            default_sink=str(default_sink) if default_sink else None,
        )

    async def list_sinks(self, timeout: float) -> list[Sink]:
        data = await self._pactl_json(["list", "sinks"], timeout)
        if not isinstance(data, list):
            raise ProbeCheckFailure("pactl list sinks returned an unexpected payload")
        return [self._parse_sink(item) for item in data if isinstance(item, dict)]

    async def process_alive(self, name: str, timeout: float) -> bool:
        try:
            processes = await asyncio.wait_for(
                asyncio.to_thread(find_processes, [name], self.uid), timeout=timeout
            )
        except psutil.Error as e:
            raise ProbeCheckFailure(f"could not list processes for {name}: {e}") from e
        return bool(processes)

    async def query_sink(self, name: str, timeout: float) -> bool:
        result = await run_command([self.pactl, "get-sink-volume", name], timeout)
        if not result.ok:
            logger.debug(f"Sink query for {name} failed: {result.stderr.strip()}")
        return result.ok

    async def recent_errors(
        self,
        units: list[str],
        window_seconds: float,
        patterns: list[str],
        timeout: float,
    ) -> list[LogEntry]:
        argv = [self.journalctl, "--user", "--no-pager", "-o", "json"]
        for unit in units:
            argv.extend(["-u", unit])
        argv.append(f"--since=-{max(1, int(window_seconds))}s")

        result = await run_command(argv, timeout)
        if not result.ok:
            raise ProbeCheckFailure(
                f"journalctl failed (exit {result.returncode}): {result.stderr.strip()}"
            )

        needles = [p.lower() for p in patterns if p]
        entries: list[LogEntry] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed journal record")
                continue
            entry = self._parse_log_entry(record)
            if entry is None:
                continue
            message = entry.message.lower()
            if any(needle in message for needle in needles):
                entries.append(entry)
        return entries

    async def _pactl_json(self, args: list[str], timeout: float) -> Any:
        result: CommandResult = await run_command([self.pactl, "--format=json", *args], timeout)
        if not result.ok:
            detail = result.stderr.strip() or f"exit {result.returncode}"
            raise ProbeCheckFailure(f"pactl {args[0]} failed: {detail}")
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as e:
            raise ProbeCheckFailure(f"pactl {args[0]} returned invalid JSON: {e}") from e

    @staticmethod
    def _parse_sink(item: dict[str, Any]) -> Sink:
        properties = item.get("properties") or {}
        return Sink(
            name=str(item.get("name", "")),
            state=SinkState.parse(item.get("state")),
            bus=properties.get("device.bus"),
            driver=item.get("driver"),
            description=item.get("description"),
        )

    @staticmethod
    def _parse_log_entry(record: Any) -> LogEntry | None:
        if not isinstance(record, dict):
            return None
        message = record.get("MESSAGE")
        # journald emits non-UTF-8 messages as byte arrays
        if isinstance(message, list):
            message = bytes(b for b in message if isinstance(b, int)).decode(
                "utf-8", errors="replace"
            )
        if not isinstance(message, str):
            return None

        try:
            micros = int(record.get("__REALTIME_TIMESTAMP", "0"))
            timestamp = datetime.fromtimestamp(micros / 1_000_000, tz=UTC)
        except (TypeError, ValueError, OverflowError, OSError):
            timestamp = datetime.now(UTC)

        try:
            priority: int | None = int(record["PRIORITY"])
        except (KeyError, TypeError, ValueError):
            priority = None

        unit = (
            record.get("_SYSTEMD_USER_UNIT")
            or record.get("SYSLOG_IDENTIFIER")
            or record.get("_COMM")
            or "unknown"
        )
        return LogEntry(timestamp=timestamp, unit=str(unit), priority=priority, message=message)
