"""
Process helpers shared by the collector and actions.

run_command runs a timeout-bounded child process. find_processes and
stop_processes look up and signal the user's audio daemons through psutil;
both block, so callers run them via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    argv: list[str] | tuple[str, ...],
    timeout: float,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """
    Run a command and wait for it, killing it if it outlives ``timeout``.

    Args:
        argv: Program and arguments (no shell)
        timeout: Seconds to wait before the child is killed
        env: Extra environment variables layered over os.environ

    Returns:
        CommandResult with decoded output

    Raises:
        TimeoutError: If the command did not finish in time
        OSError: If the program could not be started
    """
    cmd_env = os.environ.copy()
    if env:
        cmd_env.update(env)

    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        stdin=asyncio.subprocess.DEVNULL,
        env=cmd_env,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning(f"Command timed out after {timeout:g}s, killing: {' '.join(argv)}")
        _kill(process)
        await process.wait()
        raise
    except asyncio.CancelledError:
        # An outer bound fired first; kill and reap the child before re-raising
        _kill(process)
        await asyncio.shield(process.wait())
        raise

    return CommandResult(
        argv=tuple(argv),
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
        stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
    )


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


def find_processes(names: list[str] | tuple[str, ...], uid: int) -> list[psutil.Process]:
    """
    Find live processes owned by ``uid`` whose name is one of ``names``.

    Zombies are skipped: a reaped-but-unwaited daemon is not running.
    """
    wanted = set(names)
    matches = []
    for proc in psutil.process_iter(["pid", "name", "uids", "status"]):
        try:
            uids = proc.info["uids"]
            if proc.info["name"] not in wanted or uids is None or uids.effective != uid:
                continue
            if proc.info["status"] == psutil.STATUS_ZOMBIE:
                continue
            matches.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            pass
    return matches


def stop_processes(
    names: list[str] | tuple[str, ...],
    uid: int,
    grace: float,
    terminate: bool = True,
) -> list[str]:
    """
    Stop the user's processes with the given names.

    Sends SIGTERM and waits up to ``grace`` seconds, then SIGKILLs whatever
    is left. With ``terminate=False`` it goes straight to SIGKILL.

    Returns:
        Names of the processes that were signalled, in discovery order
    """
    procs = find_processes(names, uid)
    if not procs:
        return []

    stopped = [proc.info["name"] for proc in procs]
    if terminate:
        for proc in procs:
            _send_signal(proc, signal.SIGTERM)
        _, procs = psutil.wait_procs(procs, timeout=grace)
        if procs:
            logger.info(f"{len(procs)} process(es) ignored SIGTERM, force killing")

    for proc in procs:
        _send_signal(proc, signal.SIGKILL)
    _, survivors = psutil.wait_procs(procs, timeout=grace)
    for proc in survivors:
        logger.warning(f"Process {proc.pid} still alive after SIGKILL")
    return stopped


def _send_signal(proc: psutil.Process, sig: signal.Signals) -> None:
    try:
        proc.send_signal(sig)
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        pass
    except psutil.AccessDenied:
        logger.warning(f"Not allowed to signal process {proc.pid}")
