"""
Tests for runtime settings and .env loading.
"""

import os
from datetime import date
from pathlib import Path

import pytest

from sheetrelay.config import LAST_ROW, PER_JOB, ConfigError, Settings
from sheetrelay.env import load_env


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.config_range == "'COSTDATA_DB'!C2:F"
        assert settings.log_range == "'S_LOG'!A2:B"
        assert settings.batch_size == 10
        assert settings.rate_limit_delay == 0.1
        assert settings.max_attempts == 3
        assert settings.chunk_size == 3000
        assert settings.chunk_pause == 1.0
        assert settings.destination_policy == PER_JOB
        assert settings.access_token is None
        assert settings.validate() == []

    def test_overrides(self):
        settings = Settings.from_env({
            "SHEETRELAY_CONFIG_SPREADSHEET_ID": "ctrl",
            "SHEETRELAY_BATCH_SIZE": "5",
            "SHEETRELAY_RATE_LIMIT_DELAY": "0.5",
            "SHEETRELAY_CHUNK_SIZE": "5000",
            "SHEETRELAY_DESTINATION_POLICY": "LAST_ROW",
            "SHEETRELAY_FILTER_DATE_COLUMN": "0",
            "SHEETRELAY_FILTER_SINCE": "2024-04-01",
            "SHEETRELAY_RETRY_ALL_ERRORS": "true",
            "SHEETRELAY_LOG_DIR": "/tmp/relay-logs",
            "GOOGLE_ACCESS_TOKEN": " ya29.token ",
        })
        assert settings.config_table_id == "ctrl"
        assert settings.batch_size == 5
        assert settings.rate_limit_delay == 0.5
        assert settings.chunk_size == 5000
        assert settings.destination_policy == LAST_ROW
        assert settings.filter_date_column == 0
        assert settings.filter_since == date(2024, 4, 1)
        assert settings.retry_all_errors is True
        assert settings.log_dir == Path("/tmp/relay-logs")
        assert settings.access_token == "ya29.token"

    def test_blank_values_use_defaults(self):
        settings = Settings.from_env({"SHEETRELAY_BATCH_SIZE": "  "})
        assert settings.batch_size == 10

    def test_bad_integer(self):
        with pytest.raises(ConfigError, match="SHEETRELAY_CHUNK_SIZE"):
            Settings.from_env({"SHEETRELAY_CHUNK_SIZE": "lots"})

    def test_bad_date(self):
        with pytest.raises(ConfigError, match="FILTER_SINCE"):
            Settings.from_env({"SHEETRELAY_FILTER_SINCE": "01/04/2024"})


class TestSettingsValidation:
    def test_rejects_bad_values(self):
        settings = Settings(batch_size=0, chunk_size=0, max_attempts=0, chunk_pause=-1,
                            destination_policy="round_robin")
        errors = settings.validate()
        assert "batch_size must be >= 1" in errors
        assert "chunk_size must be >= 1" in errors
        assert "max_attempts must be >= 1" in errors
        assert "chunk_pause must be >= 0" in errors
        assert any("destination_policy" in e for e in errors)

    def test_rejects_unknown_log_level(self):
        settings = Settings.from_env({"SHEETRELAY_LOG_LEVEL": "verbose"})
        assert "log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL" in settings.validate()
        assert Settings.from_env({"SHEETRELAY_LOG_LEVEL": "debug"}).validate() == []

    def test_filter_needs_both_fields(self):
        errors = Settings(filter_since=date(2024, 1, 1)).validate()
        assert "filter_date_column and filter_since must be set together" in errors


class TestLoadEnv:
    def test_missing_file(self, tmp_path):
        assert load_env(tmp_path / ".env") is False

    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("SHEETRELAY_TEST_A=from-file\nSHEETRELAY_TEST_B=from-file\n")
        monkeypatch.delenv("SHEETRELAY_TEST_A", raising=False)
        monkeypatch.setenv("SHEETRELAY_TEST_B", "from-env")

        load_env(env_file)

        assert os.environ["SHEETRELAY_TEST_A"] == "from-file"
        assert os.environ["SHEETRELAY_TEST_B"] == "from-env"
        monkeypatch.delenv("SHEETRELAY_TEST_A")
