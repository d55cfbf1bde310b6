"""Tests for Settings, node options and defaults."""

import os

import pytest
from pydantic import ValidationError

from lvgo.config.constants import DEFAULTS
from lvgo.config.settings import NodeOption, Settings, get_settings
from lvgo.exceptions import InvalidConfigError


class TestSettingsDefaults:
    """Tests for default settings values."""

    @pytest.fixture(autouse=True)
    def clear_cache(self, monkeypatch):
        """Clear settings cache and LVGO_ env before each test."""
        for key in list(os.environ):
            if key.startswith("LVGO_"):
                monkeypatch.delenv(key)
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.resume is False
        assert settings.resume_timeout_s == 30
        assert settings.resume_by_library is False
        assert settings.reconnect_tries == 3
        assert settings.reconnect_interval_s == 5.0
        assert settings.rest_timeout_s == 60.0
        assert settings.move_on_disconnect is False
        assert settings.voice_connection_timeout_s == 15.0
        assert settings.user_agent == DEFAULTS.USER_AGENT

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LVGO_RECONNECT_TRIES", "7")
        monkeypatch.setenv("LVGO_RESUME", "true")
        settings = Settings(_env_file=None)
        assert settings.reconnect_tries == 7
        assert settings.resume is True

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()

    def test_get_settings_invalid_env(self, monkeypatch):
        monkeypatch.setenv("LVGO_RECONNECT_TRIES", "-1")

        with pytest.raises(InvalidConfigError) as exc_info:
            get_settings()

        assert exc_info.value.details["config_key"] == "reconnect_tries"
        assert exc_info.value.details["value"] == "-1"
        assert isinstance(exc_info.value.__cause__, ValidationError)


class TestSettingsValidation:
    """Out-of-range values fail at construction."""

    def test_negative_tries_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, reconnect_tries=-1)

    def test_zero_voice_timeout_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, voice_connection_timeout_s=0)

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="TRACE")


class TestNodeOption:
    """Tests for derived node URLs."""

    def test_plain_urls(self, node_option):
        assert node_option.rest_url == "http://localhost:2333/g1"
        assert node_option.ws_url == "ws://localhost:2333/g1/websocket"

    def test_secure_urls(self):
        option = NodeOption(name="tls", url="node.example:443", auth="pw", secure=True)
        assert option.rest_url == "https://node.example:443/g1"
        assert option.ws_url == "wss://node.example:443/g1/websocket"

    def test_frozen(self, node_option):
        with pytest.raises(AttributeError):
            node_option.name = "other"
