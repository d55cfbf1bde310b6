"""Tests for library defaults and node URLs."""

import pytest

from lvgo.config.constants import DEFAULTS, Defaults
from lvgo.config.settings import NodeOption


class TestDefaults:
    """Tests for the Defaults class."""

    def test_is_frozen(self):
        """Defaults are frozen (immutable)."""
        with pytest.raises(Exception):  # FrozenInstanceError
            DEFAULTS.RECONNECT_TRIES = 99

    def test_singleton_instance(self):
        assert isinstance(DEFAULTS, Defaults)

    def test_reconnect(self):
        assert DEFAULTS.RECONNECT_TRIES == 3
        assert DEFAULTS.RECONNECT_INTERVAL_S == 5.0

    def test_timeouts(self):
        assert DEFAULTS.REST_TIMEOUT_S == 60.0
        assert DEFAULTS.VOICE_CONNECTION_TIMEOUT_S == 15.0

    def test_close_codes(self):
        assert DEFAULTS.CLOSE_NORMAL == 1000
        assert DEFAULTS.CLOSE_PROTOCOL_ERROR == 1002
        assert DEFAULTS.CLOSE_ABNORMAL == 1006


class TestNodeOptionUrls:
    """URLs derived from a node option."""

    def test_plain(self):
        option = NodeOption(name="main", url="localhost:2333", auth="pw")
        assert option.rest_url == f"http://localhost:2333{DEFAULTS.API_PREFIX}"
        assert option.ws_url == f"ws://localhost:2333{DEFAULTS.WEBSOCKET_PATH}"

    def test_secure(self):
        option = NodeOption(name="main", url="audio.example:443", auth="pw", secure=True)
        assert option.rest_url.startswith("https://")
        assert option.ws_url.startswith("wss://")
