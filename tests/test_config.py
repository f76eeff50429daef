"""Tests for configuration settings."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from laundrylog.config.settings import (
    DEFAULT_CONFIG_FILE,
    MIN_PASSPHRASE_LENGTH,
    ConfigurationError,
    Settings,
    _apply_environment_overrides,
    _set_nested_attr,
    _settings_to_dict,
    _validate_config,
    get_config_path,
    load_config,
    save_config,
)


class TestSettings(unittest.TestCase):
    """Tests for Settings defaults."""

    def test_defaults(self) -> None:
        """Test default values."""
        settings = Settings()

        self.assertEqual(settings.log_level, "INFO")
        self.assertTrue(settings.data_dir.endswith("data"))
        self.assertTrue(settings.backup.backup_dir.endswith("backups"))
        self.assertEqual(settings.backup.min_passphrase_length, MIN_PASSPHRASE_LENGTH)
        self.assertTrue(settings.export.output_dir.endswith("exports"))

    def test_nested_defaults_not_shared(self) -> None:
        """Test each Settings gets its own nested config objects."""
        first = Settings()
        second = Settings()
        first.backup.backup_dir = "/elsewhere"

        self.assertNotEqual(second.backup.backup_dir, "/elsewhere")


class TestConfigPath(unittest.TestCase):
    """Tests for get_config_path."""

    def test_default_path(self) -> None:
        """Test the default path is used without an override."""
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(get_config_path(), DEFAULT_CONFIG_FILE)

    def test_env_override(self) -> None:
        """Test LAUNDRYLOG_CONFIG overrides the path."""
        with patch.dict(os.environ, {"LAUNDRYLOG_CONFIG": "/custom/config.yaml"}):
            self.assertEqual(get_config_path(), Path("/custom/config.yaml"))


class TestLoadSave(unittest.TestCase):
    """Tests for load_config and save_config."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "config.yaml"
        self.env = patch.dict(os.environ, {}, clear=True)
        self.env.start()

    def tearDown(self) -> None:
        self.env.stop()
        self.temp_dir.cleanup()

    def test_missing_file_gives_defaults(self) -> None:
        """Test a missing config file is not an error."""
        settings = load_config(self.config_path)

        self.assertEqual(settings.log_level, "INFO")

    def test_round_trip(self) -> None:
        """Test saved settings load back identically."""
        settings = Settings()
        settings.data_dir = "/srv/laundry"
        settings.log_level = "DEBUG"
        settings.backup.backup_dir = "/mnt/usb/backups"
        settings.backup.min_passphrase_length = 12
        settings.export.output_dir = "/tmp/exports"

        save_config(settings, self.config_path)
        loaded = load_config(self.config_path)

        self.assertEqual(_settings_to_dict(loaded), _settings_to_dict(settings))

    def test_partial_file(self) -> None:
        """Test unspecified keys keep their defaults."""
        self.config_path.write_text("backup:\n  backup_dir: /backups\n")

        settings = load_config(self.config_path)

        self.assertEqual(settings.backup.backup_dir, "/backups")
        self.assertEqual(settings.backup.min_passphrase_length, MIN_PASSPHRASE_LENGTH)

    def test_empty_file(self) -> None:
        """Test an empty file gives defaults."""
        self.config_path.write_text("")

        self.assertEqual(load_config(self.config_path).log_level, "INFO")

    def test_invalid_yaml(self) -> None:
        """Test malformed YAML raises ConfigurationError."""
        self.config_path.write_text("backup: [unclosed")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_non_mapping(self) -> None:
        """Test a YAML list is rejected."""
        self.config_path.write_text("- one\n- two\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_passphrase_length_below_minimum(self) -> None:
        """Test the passphrase policy cannot be weakened below 8."""
        self.config_path.write_text("backup:\n  min_passphrase_length: 4\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_passphrase_length_not_integer(self) -> None:
        """Test a non-integer passphrase length is rejected."""
        self.config_path.write_text("backup:\n  min_passphrase_length: long\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_env_overrides_file(self) -> None:
        """Test environment variables win over the config file."""
        self.config_path.write_text("laundrylog:\n  log_level: INFO\n")

        with patch.dict(os.environ, {"LAUNDRYLOG_LOG_LEVEL": "warning"}):
            settings = load_config(self.config_path)

        self.assertEqual(settings.log_level, "WARNING")


class TestEnvironmentOverrides(unittest.TestCase):
    """Tests for _apply_environment_overrides."""

    def test_paths(self) -> None:
        """Test directory overrides."""
        env = {
            "LAUNDRYLOG_DATA_DIR": "/env/data",
            "LAUNDRYLOG_BACKUP_DIR": "/env/backups",
            "LAUNDRYLOG_EXPORT_DIR": "/env/exports",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = _apply_environment_overrides(Settings())

        self.assertEqual(settings.data_dir, "/env/data")
        self.assertEqual(settings.backup.backup_dir, "/env/backups")
        self.assertEqual(settings.export.output_dir, "/env/exports")

    def test_passphrase_length(self) -> None:
        """Test integer conversion of the passphrase length."""
        with patch.dict(os.environ, {"LAUNDRYLOG_MIN_PASSPHRASE_LENGTH": "16"}, clear=True):
            settings = _apply_environment_overrides(Settings())

        self.assertEqual(settings.backup.min_passphrase_length, 16)

    def test_invalid_integer(self) -> None:
        """Test a bad integer raises ConfigurationError."""
        with patch.dict(os.environ, {"LAUNDRYLOG_MIN_PASSPHRASE_LENGTH": "many"}, clear=True):
            with self.assertRaises(ConfigurationError):
                _apply_environment_overrides(Settings())


class TestValidation(unittest.TestCase):
    """Tests for _validate_config and helpers."""

    def test_valid(self) -> None:
        """Test defaults validate."""
        _validate_config(Settings())

    def test_invalid_log_level(self) -> None:
        """Test unknown log levels are rejected."""
        settings = Settings()
        settings.log_level = "LOUD"

        with self.assertRaises(ConfigurationError):
            _validate_config(settings)

    def test_set_nested_attr(self) -> None:
        """Test dotted attribute paths."""
        settings = Settings()

        _set_nested_attr(settings, "backup.backup_dir", "/x")

        self.assertEqual(settings.backup.backup_dir, "/x")


if __name__ == "__main__":
    unittest.main()
