"""
Tests for quill_engine/config.py -- Settings loading and logging setup.
"""

import json
import logging

from quill_engine.config import (
    AUTO_COMMIT_THRESHOLD,
    EngineSettings,
    configure_logging,
    get_settings_path,
    load_settings,
)


class TestLoadSettings:
    """Tests for load_settings."""

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.json", environ={})
        assert settings == EngineSettings()
        assert settings.auto_commit_threshold == AUTO_COMMIT_THRESHOLD

    def test_file_values_are_read(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"auto_commit_threshold": 0.9, "auto_apply_enabled": False}))
        settings = load_settings(path, environ={})
        assert settings.auto_commit_threshold == 0.9
        assert settings.auto_apply_enabled is False

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"auto_commit_threshold": 0.9}))
        settings = load_settings(path, environ={
            "QUILL_AUTO_COMMIT_THRESHOLD": "0.5",
            "QUILL_AUTO_APPLY": "false",
            "QUILL_LOG_LEVEL": "DEBUG",
        })
        assert settings.auto_commit_threshold == 0.5
        assert settings.auto_apply_enabled is False
        assert settings.log_level == "DEBUG"

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert load_settings(path, environ={}) == EngineSettings()

    def test_non_object_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")
        assert load_settings(path, environ={}) == EngineSettings()

    def test_out_of_range_value_falls_back(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"auto_commit_threshold": 3}))
        assert load_settings(path, environ={}) == EngineSettings()

    def test_default_path_is_settings_json(self):
        assert get_settings_path().name == "settings.json"


class TestConfigureLogging:

    def test_sets_package_logger_level(self):
        configure_logging(EngineSettings(log_level="debug"))
        assert logging.getLogger("quill_engine").level == logging.DEBUG

    def test_unknown_level_uses_info(self):
        configure_logging(EngineSettings(log_level="chatty"))
        assert logging.getLogger("quill_engine").level == logging.INFO
