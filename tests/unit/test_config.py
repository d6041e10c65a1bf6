"""Tests for settings loading and logging setup."""

import logging

import pytest
from polychat.config import DEFAULT_BASE_URL, DEFAULT_MODEL, Settings, get_settings, setup_logging
from pydantic import ValidationError


class TestSettings:
    def test_defaults(self, monkeypatch):
        for var in (
            "OPENROUTER_API_KEY",
            "POLYCHAT_BASE_URL",
            "POLYCHAT_DEFAULT_MODEL",
            "POLYCHAT_STORAGE_DIR",
            "POLYCHAT_LOG_LEVEL",
        ):
            monkeypatch.delenv(var, raising=False)

        settings = Settings()
        assert settings.api_key == ""
        assert settings.has_api_key is False
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.default_model == DEFAULT_MODEL
        assert settings.history_limit == 20
        assert settings.reveal_delay == 0.03
        assert settings.retry_attempts == 3
        assert settings.retry_base_delay == 1.0
        assert settings.storage_dir is None
        assert settings.log_level == "WARNING"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "  sk-or-test  ")
        monkeypatch.setenv("POLYCHAT_DEFAULT_MODEL", "meta-llama/llama-3.3-70b-instruct")
        monkeypatch.setenv("POLYCHAT_STORAGE_DIR", "/tmp/polychat")
        monkeypatch.setenv("POLYCHAT_LOG_LEVEL", "debug")

        settings = get_settings()
        assert settings.api_key == "sk-or-test"
        assert settings.has_api_key is True
        assert settings.default_model == "meta-llama/llama-3.3-70b-instruct"
        assert settings.storage_dir == "/tmp/polychat"
        assert settings.log_level == "DEBUG"

    def test_empty_storage_dir_means_memory(self, monkeypatch):
        monkeypatch.setenv("POLYCHAT_STORAGE_DIR", "")
        assert Settings().storage_dir is None

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    def test_rejects_unknown_log_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("POLYCHAT_LOG_LEVEL", "bogus")
        with pytest.raises(ValidationError):
            Settings()

    def test_strips_newline_from_environment_key(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test\n")
        assert Settings().api_key == "sk-or-test"

    @pytest.mark.parametrize("field, value", [("history_limit", 0), ("retry_attempts", 0), ("reveal_delay", -1)])
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})


class TestSetupLogging:
    def test_configures_root_logger(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
        setup_logging("info")
        assert calls[0]["level"] == logging.INFO
