"""
Tests for configuration loading.
"""

from datetime import time

import pytest
from pydantic import ValidationError

from bookingslots.config import AppConfig, DefaultsConfig, FallbackWindowConfig


class TestAppConfig:
    """Tests for AppConfig."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("APP_DB_PATH", raising=False)

        config = AppConfig()

        assert config.defaults.duration_minutes == 30
        assert config.defaults.buffer_minutes == 15
        assert config.defaults.granularity_minutes == 15
        assert config.fallback_window.get_start_time() == time(8, 0)
        assert config.fallback_window.get_end_time() == time(18, 0)
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 3000
        assert config.booking.allow_past is False
        assert config.resolve_database_path() == "data/bookings.db"

    def test_load_from_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "database_path: /tmp/shop.db\n"
            "log_level: debug\n"
            "defaults:\n"
            "  duration_minutes: 60\n"
            "  buffer_minutes: 0\n"
            "fallback_window:\n"
            "  start: '09:00'\n"
            "  end: '17:00'\n"
            "work_windows:\n"
            "  - weekday: 0\n"
            "    start: '09:00'\n"
            "    end: '12:00'\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(config_file)

        assert config.database_path == "/tmp/shop.db"
        assert config.log_level == "DEBUG"
        assert config.defaults.duration_minutes == 60
        assert config.defaults.granularity_minutes == 15
        assert config.fallback_window.get_start_time() == time(9, 0)
        windows = config.seed_windows()
        assert len(windows) == 1
        assert windows[0].weekday == 0
        assert windows[0].end == time(12, 0)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("defaults: [unclosed\n", encoding="utf-8")

        with pytest.raises(ValueError):
            AppConfig.load_from_yaml(config_file)

    def test_root_must_be_mapping(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- 1\n- 2\n", encoding="utf-8")

        with pytest.raises(ValueError):
            AppConfig.load_from_yaml(config_file)

    def test_empty_file_gives_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")

        assert AppConfig.load_from_yaml(config_file) == AppConfig()

    def test_environment_overrides_database_path(self, monkeypatch):
        monkeypatch.setenv("APP_DB_PATH", "/var/lib/shop.db")

        assert AppConfig(database_path="other.db").resolve_database_path() == "/var/lib/shop.db"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            AppConfig(log_level="chatty")

    def test_invalid_seed_window(self):
        with pytest.raises(ValidationError):
            AppConfig(work_windows=[{"weekday": 0, "start": "12:00", "end": "08:00"}])
        with pytest.raises(ValidationError):
            AppConfig(work_windows=[{"weekday": 9, "start": "08:00", "end": "12:00"}])


class TestDefaultsConfig:
    """Tests for DefaultsConfig validation."""

    def test_zero_granularity_rejected(self):
        with pytest.raises(ValidationError):
            DefaultsConfig(granularity_minutes=0)

    def test_negative_buffer_rejected(self):
        with pytest.raises(ValidationError):
            DefaultsConfig(buffer_minutes=-1)

    @pytest.mark.parametrize("field", ["duration_minutes", "buffer_minutes", "granularity_minutes"])
    def test_more_than_a_day_rejected(self, field):
        with pytest.raises(ValidationError):
            DefaultsConfig(**{field: 1441})

    def test_zero_duration_and_buffer_accepted(self):
        defaults = DefaultsConfig(duration_minutes=0, buffer_minutes=0)

        assert defaults.duration_minutes == 0


class TestFallbackWindowConfig:
    """Tests for FallbackWindowConfig validation."""

    def test_invalid_time_format(self):
        with pytest.raises(ValidationError):
            FallbackWindowConfig(start="8am")

    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            FallbackWindowConfig(start="18:00", end="08:00")
