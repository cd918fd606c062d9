"""Monitor configuration — defaults, environment, TOML config file, CLI flags.

Precedence (highest first): non-empty command-line flags, the TOML config
file, ``ATLANTIS_MONITOR_*`` environment variables, built-in defaults.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, TomlConfigSettingsSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "/etc/atlantis/supervisor/monitor.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when the resolved configuration is invalid."""


class MonitorSettings(BaseSettings):
    """Settings for one monitor run."""

    model_config = SettingsConfigDict(env_prefix="ATLANTIS_MONITOR_", extra="ignore")

    # Saved container map written by the supervisor
    container_file: str = "/etc/atlantis/supervisor/save/containers"
    # One marker file per service registered with check_mk
    inventory_dir: str = "/etc/atlantis/supervisor/inventory"

    # SSH into containers
    ssh_identity: str = "/opt/atlantis/supervisor/master_id_rsa"
    ssh_user: str = "root"
    ssh_binary: str = "ssh"

    # Service name shown in Nagios for the monitor itself
    check_name: str = "ContainerMonitor"
    # Directory holding the check scripts inside every container
    check_dir: str = "/check_mk_checks"
    # Max seconds to wait for a single check
    timeout_duration: int = Field(default=110, gt=0)

    cmk_admin_path: str = "/usr/bin/cmk_admin"

    # Exclusive run lock; empty disables it. Rejected inside inventory_dir.
    lock_file: str = ""

    log_level: str = "WARNING"

    @field_validator("ssh_identity")
    @classmethod
    def _expand_home(cls, value: str) -> str:
        return os.path.expanduser(value)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _lock_outside_inventory(self) -> MonitorSettings:
        if self.lock_file:
            lock = Path(os.path.abspath(self.lock_file))
            if lock.is_relative_to(os.path.abspath(self.inventory_dir)):
                raise ValueError("lock_file must not be inside inventory_dir")
        return self

    @property
    def timeout_seconds(self) -> float:
        return float(self.timeout_duration)


def read_config_file(path: str | Path | None) -> dict[str, Any]:
    """Values from a TOML config file; a missing or broken file yields none."""
    if not path:
        return {}
    path = Path(path)
    if not path.exists():
        logger.info("Config file %s not found, using defaults", path)
        return {}
    try:
        return dict(TomlConfigSettingsSource(MonitorSettings, toml_file=path)())
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}


def load_settings(
    config_file: str | Path | None = DEFAULT_CONFIG_FILE,
    overrides: dict[str, Any] | None = None,
) -> MonitorSettings:
    """Resolve settings from the config file overlaid with flag values.

    Flag values that are ``None``, empty or zero are treated as unset.
    """
    values = read_config_file(config_file)
    for key, value in (overrides or {}).items():
        if value is None or value == "" or value == 0:
            continue
        values[key] = value
    try:
        return MonitorSettings(**values)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
