"""
Tests for the application configuration.
"""

import pytest

from core.exceptions import ConfigurationError
from orchestrator.config import AppConfig


class TestFromEnv:

    def test_defaults(self, no_env_file):
        config = AppConfig.from_env(no_env_file)

        assert config.scheduler.tracking_interval_seconds == 300
        assert config.scheduler.kline_interval_seconds == 3600
        assert config.scheduler.aggregation_interval_seconds == 3600
        assert config.lifecycle.tracker.tracking_interval_seconds == 300
        assert config.logging.format == "json"
        assert config.api.port == 8080

    def test_overrides(self, monkeypatch, no_env_file):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///engine.db")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "TEXT")
        monkeypatch.setenv("TRACKING_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("PRICE_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("BINANCE_BASE_URL", "http://localhost:9000")
        monkeypatch.setenv("API_PORT", "9001")

        config = AppConfig.from_env(no_env_file)

        assert config.database.url == "sqlite+aiosqlite:///engine.db"
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "text"
        assert config.scheduler.tracking_interval_seconds == 60
        assert config.lifecycle.tracker.tracking_interval_seconds == 60
        assert config.lifecycle.tracker.price_timeout_seconds == 2.5
        assert config.source.binance_base_url == "http://localhost:9000"
        assert config.api.port == 9001

    def test_reads_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("AGGREGATION_INTERVAL_SECONDS=900\nAPI_HOST=127.0.0.1\n")

        config = AppConfig.from_env(str(env_file))

        assert config.scheduler.aggregation_interval_seconds == 900
        assert config.api.host == "127.0.0.1"

    def test_blank_values_keep_defaults(self, monkeypatch, no_env_file):
        monkeypatch.setenv("KLINE_INTERVAL_SECONDS", "  ")
        assert AppConfig.from_env(no_env_file).scheduler.kline_interval_seconds == 3600

    def test_non_numeric_value(self, monkeypatch, no_env_file):
        monkeypatch.setenv("TRACKING_INTERVAL_SECONDS", "five minutes")

        with pytest.raises(ConfigurationError) as exc_info:
            AppConfig.from_env(no_env_file)

        assert exc_info.value.context["config_key"] == "TRACKING_INTERVAL_SECONDS"


class TestValidate:

    def test_zero_interval(self):
        config = AppConfig()
        config.scheduler.aggregation_interval_seconds = 0

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.context["config_key"] == "scheduler.aggregation_interval_seconds"

    def test_negative_grace(self):
        config = AppConfig()
        config.scheduler.shutdown_grace_seconds = -1
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_unknown_log_format(self):
        config = AppConfig()
        config.logging.format = "xml"
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_port_out_of_range(self):
        config = AppConfig()
        config.api.port = 70000
        with pytest.raises(ConfigurationError):
            config.validate()
