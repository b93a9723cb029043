"""Tests for core.settings module.

Covers:
- RampartSettings defaults
- RAMPART_* environment overrides
- log level validation
"""

import pytest
from pydantic import ValidationError

from rampart.core.settings import RampartSettings, get_settings


class TestRampartSettingsDefaults:
    def test_default_log_level(self):
        assert RampartSettings().log_level == "INFO"

    def test_default_log_json_auto(self):
        assert RampartSettings().log_json is None

    def test_default_service_name(self):
        assert RampartSettings().service_name == "rampart"


class TestRampartSettingsEnvOverride:
    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("RAMPART_LOG_LEVEL", "debug")
        assert RampartSettings().log_level == "DEBUG"

    def test_log_json_from_env(self, monkeypatch):
        monkeypatch.setenv("RAMPART_LOG_JSON", "true")
        assert RampartSettings().log_json is True

    def test_service_name_from_env(self, monkeypatch):
        monkeypatch.setenv("RAMPART_SERVICE_NAME", "orders")
        assert get_settings().service_name == "orders"

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("RAMPART_LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError):
            RampartSettings()
