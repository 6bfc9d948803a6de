"""
Loading and saving the pwguard config file.

A YAML (or JSON) file under PWGUARD_HOME supplies values, command-line
flags override them, and the pydantic section models fill in the rest.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from pwguard.config.notifications import NotificationsConfig
from pwguard.config.probe import ProbeConfig
from pwguard.config.remediation import RemediationConfig
from pwguard.config.watchdog import WatchdogConfig
from pwguard.errors import ConfigurationError


def get_pwguard_home() -> Path:
    """Get pwguard home directory, respecting PWGUARD_HOME env var."""
    pwguard_home = os.environ.get("PWGUARD_HOME")
    if pwguard_home:
        return Path(pwguard_home)
    return Path.home() / ".pwguard"


def default_config_path() -> Path:
    return get_pwguard_home() / "config.yaml"


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Log level",
    )
    format: Literal["text", "json"] = Field(
        default="text",
        description="Log format (text or json)",
    )
    file: str = Field(
        default="~/.pwguard/logs/pwguard.log",
        description="Watchdog log file path",
    )
    journal_file: str | None = Field(
        default="~/.pwguard/logs/transitions.jsonl",
        description="JSON-lines file receiving one record per state transition (null to disable)",
    )
    max_size_mb: int = Field(
        default=10,
        description="Maximum log file size in MB",
    )
    backup_count: int = Field(
        default=5,
        description="Number of backup log files to keep",
    )

    @field_validator("max_size_mb", "backup_count")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate value is positive."""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v


class PwguardConfig(BaseModel):
    """
    Main configuration for pwguard.

    Configuration is loaded with the following priority:
    1. CLI arguments (highest)
    2. YAML file (~/.pwguard/config.yaml)
    3. Defaults (lowest)
    """

    model_config = {"populate_by_name": True}

    watchdog: WatchdogConfig = Field(
        default_factory=WatchdogConfig,
        description="Probe loop and escalation settings",
    )
    probe: ProbeConfig = Field(
        default_factory=ProbeConfig,
        description="Health check battery settings",
    )
    remediation: RemediationConfig = Field(
        default_factory=RemediationConfig,
        description="Remediation ladder settings",
    )
    notifications: NotificationsConfig = Field(
        default_factory=NotificationsConfig,
        description="Alert delivery settings",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    @model_validator(mode="after")
    def check_probe_timeout(self) -> "PwguardConfig":
        """The outer probe bound must leave room for every check's own bound."""
        budget = self.probe.timeouts.total
        if self.watchdog.probe_timeout < budget:
            raise ValueError(
                f"watchdog.probe_timeout ({self.watchdog.probe_timeout:g}s) is shorter than "
                f"the sum of the probe's check timeouts ({budget:g}s)"
            )
        return self


def load_yaml(config_file: str | Path) -> dict[str, Any]:
    """
    Read a config file into a plain dict.

    Args:
        config_file: .yaml, .yml or .json file; a missing file reads as empty

    Returns:
        The top-level mapping

    Raises:
        ConfigurationError: If YAML/JSON is invalid or file format is wrong
    """
    config_path = Path(config_file).expanduser()

    if not config_path.exists():
        return {}

    file_ext = config_path.suffix.lower()
    if file_ext not in [".yaml", ".yml", ".json"]:
        raise ConfigurationError(
            f"Config file must have .yaml, .yml, or .json extension, got: {file_ext}\n"
            f"File: {config_path}"
        )

    try:
        with open(config_path) as f:
            content = f.read()

        if file_ext == ".json":
            data = json.loads(content) if content.strip() else {}
        else:
            data = yaml.safe_load(content)

    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {config_path}")
    return data


def apply_cli_overrides(
    config_dict: dict[str, Any],
    cli_overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Layer command-line values over the file contents, in place.

    Args:
        config_dict: Parsed config file
        cli_overrides: Flag values keyed by dotted path, e.g.
            "watchdog.failure_threshold"; None means the flag was not given

    Returns:
        config_dict, updated
    """
    if cli_overrides is None:
        return config_dict

    for key, value in cli_overrides.items():
        if value is None:
            continue
        if "." in key:
            parts = key.split(".")
            current = config_dict
            for part in parts[:-1]:
                if part not in current or not isinstance(current[part], dict):
                    current[part] = {}
                current = current[part]
            current[parts[-1]] = value
        else:
            config_dict[key] = value

    return config_dict


def generate_default_config(config_file: str | Path) -> None:
    """Write every default value to ``config_file`` so users have something to edit."""
    config_path = Path(config_file).expanduser()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    default_config = PwguardConfig().model_dump(mode="python", exclude_none=True)

    with open(config_path, "w") as f:
        yaml.safe_dump(default_config, f, default_flow_style=False, sort_keys=False)

    # Webhook headers may carry tokens
    config_path.chmod(0o600)


def load_config(
    config_file: str | Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
    create_default: bool = False,
) -> PwguardConfig:
    """
    Build the effective configuration: flags, then file, then defaults.

    Args:
        config_file: Config file (default: $PWGUARD_HOME/config.yaml)
        cli_overrides: Dotted-key flag values, see apply_cli_overrides()
        create_default: Write a default file first when none exists

    Returns:
        Validated PwguardConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if config_file is None:
        config_file = default_config_path()

    config_path = Path(config_file).expanduser()

    if create_default and not config_path.exists():
        generate_default_config(config_path)

    config_dict = load_yaml(config_path)
    config_dict = apply_cli_overrides(config_dict, cli_overrides)

    try:
        return PwguardConfig(**config_dict)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}\n"
            f"Please check your configuration file at {config_path}"
        ) from e


def save_config(config: PwguardConfig, config_file: str | Path | None = None) -> None:
    """
    Persist ``config`` as YAML, readable only by the owner.

    Raises:
        OSError: If the file cannot be written
    """
    if config_file is None:
        config_file = default_config_path()

    config_path = Path(config_file).expanduser()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.safe_dump(
            config.model_dump(mode="python", exclude_none=True),
            f,
            default_flow_style=False,
            sort_keys=False,
        )
    config_path.chmod(0o600)
