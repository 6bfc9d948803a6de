"""
Alert delivery.

Sinks raise NotificationFailure when delivery fails; the watchdog only
ever calls them through ``deliver()``, which logs and swallows every
failure so alerting can never take the loop down.
"""

from __future__ import annotations

import logging
import os
import re
import socket
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

import httpx

from pwguard.config.notifications import (
    DesktopNotificationConfig,
    NotificationsConfig,
    WebhookEndpointConfig,
)
from pwguard.errors import NotificationFailure
from pwguard.utils.process import run_command

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class NotificationSink(Protocol):
    """Best-effort alert delivery."""

    async def notify(self, severity: Severity, message: str) -> None: ...


class DesktopNotifier:
    """Pops a notification on the user's desktop session via notify-send."""

    _URGENCY = {
        Severity.INFO: "low",
        Severity.WARNING: "normal",
        Severity.CRITICAL: "critical",
    }

    def __init__(self, config: DesktopNotificationConfig | None = None):
        self.config = config or DesktopNotificationConfig()

    async def notify(self, severity: Severity, message: str) -> None:
        argv = [
            "notify-send",
            "--app-name",
            self.config.app_name,
            "--urgency",
            self._URGENCY[severity],
            f"Audio watchdog: {severity.value}",
            message,
        ]
        try:
            result = await run_command(argv, self.config.timeout)
        except TimeoutError as e:
            raise NotificationFailure(
                f"notify-send timed out after {self.config.timeout:g}s"
            ) from e
        except OSError as e:
            raise NotificationFailure(f"notify-send unavailable: {e}") from e
        if not result.ok:
            raise NotificationFailure(
                f"notify-send exited {result.returncode}: {result.stderr.strip()}"
            )


class WebhookNotifier:
    """Posts a JSON alert to an HTTP endpoint."""

    def __init__(self, endpoint: WebhookEndpointConfig):
        self.endpoint = endpoint

    async def notify(self, severity: Severity, message: str) -> None:
        payload = {
            "source": "pwguard",
            "host": socket.gethostname(),
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        headers = self._expand_env_vars(self.endpoint.headers)

        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    self.endpoint.method,
                    self.endpoint.url,
                    headers=headers,
                    json=payload,
                    timeout=self.endpoint.timeout,
                )
        except httpx.HTTPError as e:
            raise NotificationFailure(f"Webhook to {self.endpoint.url} failed: {e}") from e

        if response.status_code >= 400:
            raise NotificationFailure(
                f"Webhook to {self.endpoint.url} returned {response.status_code}: {response.text}"
            )
        logger.debug(f"Webhook sent successfully to {self.endpoint.url}")

    def _expand_env_vars(self, headers: dict[str, str]) -> dict[str, str]:
        """Expand ${VAR} patterns in header values from environment."""

        def replacer(match: re.Match) -> str:
            return os.environ.get(match.group(1), match.group(0))

        return {key: _ENV_VAR_PATTERN.sub(replacer, value) for key, value in headers.items()}


class CompositeNotifier:
    """Fans an alert out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: list[NotificationSink]):
        self.sinks = list(sinks)

    async def notify(self, severity: Severity, message: str) -> None:
        failures = []
        for sink in self.sinks:
            if not await deliver(sink, severity, message):
                failures.append(type(sink).__name__)
        if failures and len(failures) == len(self.sinks):
            raise NotificationFailure(f"all notification sinks failed: {', '.join(failures)}")


async def deliver(sink: NotificationSink | None, severity: Severity, message: str) -> bool:
    """
    Fire-and-forget delivery.

    Returns:
        True if the sink accepted the alert, False if it failed (already logged).
    """
    if sink is None:
        logger.warning(
            f"No notification sink configured; dropping {severity.value} alert: {message}"
        )
        return False
    try:
        await sink.notify(severity, message)
        return True
    except NotificationFailure as e:
        logger.error(f"Notification failed: {e}")
    except Exception as e:
        logger.error(f"Notification sink {type(sink).__name__} raised: {e}", exc_info=True)
    return False


def build_notifier(config: NotificationsConfig) -> NotificationSink | None:
    """Build the sink set described by config, or None when alerting is off."""
    sinks: list[NotificationSink] = []
    if config.desktop.enabled:
        sinks.append(DesktopNotifier(config.desktop))
    sinks.extend(WebhookNotifier(endpoint) for endpoint in config.webhooks)

    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return CompositeNotifier(sinks)
