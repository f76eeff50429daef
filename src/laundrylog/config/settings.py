"""
Configuration settings management for laundrylog.

This module handles loading, validating, and saving configuration settings
from YAML files with support for environment variable overrides.

Configuration is loaded from ~/.laundrylog/config.yaml by default, with the
path overridable via the LAUNDRYLOG_CONFIG environment variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".laundrylog"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

# Backups protect the whole household ledger; shorter passphrases are refused
MIN_PASSPHRASE_LENGTH = 8


@dataclass
class BackupConfig:
    """Encrypted backup settings."""

    backup_dir: str = str(DEFAULT_CONFIG_DIR / "backups")
    min_passphrase_length: int = MIN_PASSPHRASE_LENGTH


@dataclass
class ExportConfig:
    """Plain-text export settings."""

    output_dir: str = str(DEFAULT_CONFIG_DIR / "exports")


@dataclass
class Settings:
    """
    Complete laundrylog configuration settings.

    Settings are loaded from a YAML configuration file and can be overridden
    by environment variables prefixed with LAUNDRYLOG_.

    Attributes:
        data_dir: Directory holding the SQLite database.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        backup: Encrypted backup settings.
        export: CSV export settings.
    """

    data_dir: str = str(DEFAULT_CONFIG_DIR / "data")
    log_level: str = "INFO"

    backup: BackupConfig = field(default_factory=BackupConfig)
    export: ExportConfig = field(default_factory=ExportConfig)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from LAUNDRYLOG_CONFIG environment variable if set,
    otherwise returns the default path (~/.laundrylog/config.yaml).
    """
    env_path = os.environ.get("LAUNDRYLOG_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.

    Args:
        config_path: Optional path to configuration file. If not provided,
                    uses LAUNDRYLOG_CONFIG environment variable or default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a mapping")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Raises:
        ConfigurationError: If the configuration cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_data = _settings_to_dict(settings)

    try:
        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    app_data = data.get("laundrylog") or {}

    if "data_dir" in app_data:
        settings.data_dir = str(app_data["data_dir"])
    if "log_level" in app_data:
        settings.log_level = str(app_data["log_level"]).upper()

    backup = data.get("backup") or {}
    if "backup_dir" in backup:
        settings.backup.backup_dir = str(backup["backup_dir"])
    if "min_passphrase_length" in backup:
        try:
            settings.backup.min_passphrase_length = int(backup["min_passphrase_length"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"min_passphrase_length must be an integer: {e}"
            ) from e

    export = data.get("export") or {}
    if "output_dir" in export:
        settings.export.output_dir = str(export["output_dir"])

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "LAUNDRYLOG_DATA_DIR": ("data_dir", str),
        "LAUNDRYLOG_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "LAUNDRYLOG_BACKUP_DIR": ("backup.backup_dir", str),
        "LAUNDRYLOG_MIN_PASSPHRASE_LENGTH": ("backup.min_passphrase_length", int),
        "LAUNDRYLOG_EXPORT_DIR": ("export.output_dir", str),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                converted = converter(value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {e}") from e
            _set_nested_attr(settings, attr_path, converted)

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if settings.backup.min_passphrase_length < MIN_PASSPHRASE_LENGTH:
        raise ConfigurationError(
            f"min_passphrase_length must be at least {MIN_PASSPHRASE_LENGTH}"
        )


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "laundrylog": {
            "data_dir": settings.data_dir,
            "log_level": settings.log_level,
        },
        "backup": {
            "backup_dir": settings.backup.backup_dir,
            "min_passphrase_length": settings.backup.min_passphrase_length,
        },
        "export": {
            "output_dir": settings.export.output_dir,
        },
    }
