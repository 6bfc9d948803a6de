"""
Configuration package for pwguard.

This package provides Pydantic config models for all watchdog settings.

Module structure:
- app.py: PwguardConfig, LoggingSettings, loading and saving
- watchdog.py: WatchdogConfig (interval, threshold, cooldown)
- probe.py: ProbeConfig and per-check timeouts
- remediation.py: RemediationConfig and ladder tiers
- notifications.py: desktop and webhook alert settings
"""

from pwguard.config.app import (
    LoggingSettings,
    PwguardConfig,
    apply_cli_overrides,
    default_config_path,
    generate_default_config,
    get_pwguard_home,
    load_config,
    save_config,
)
from pwguard.config.notifications import (
    DesktopNotificationConfig,
    NotificationsConfig,
    WebhookEndpointConfig,
)
from pwguard.config.probe import CheckTimeouts, ProbeConfig
from pwguard.config.remediation import RemediationConfig, TierConfig
from pwguard.config.watchdog import WatchdogConfig

__all__ = [
    "CheckTimeouts",
    "DesktopNotificationConfig",
    "LoggingSettings",
    "NotificationsConfig",
    "ProbeConfig",
    "PwguardConfig",
    "RemediationConfig",
    "TierConfig",
    "WatchdogConfig",
    "WebhookEndpointConfig",
    "apply_cli_overrides",
    "default_config_path",
    "generate_default_config",
    "get_pwguard_home",
    "load_config",
    "save_config",
]
