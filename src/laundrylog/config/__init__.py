"""
Configuration management for laundrylog.

This module handles loading, validating, and saving configuration settings.
"""

from laundrylog.config.settings import (
    DEFAULT_CONFIG_DIR,
    MIN_PASSPHRASE_LENGTH,
    BackupConfig,
    ConfigurationError,
    ExportConfig,
    Settings,
    load_config,
    save_config,
)

__all__ = [
    "Settings",
    "BackupConfig",
    "ExportConfig",
    "load_config",
    "save_config",
    "ConfigurationError",
    "DEFAULT_CONFIG_DIR",
    "MIN_PASSPHRASE_LENGTH",
]
