"""Tests for shieldbot.config.settings."""

import pytest
from pydantic import ValidationError


class TestSettings:
    """Test the Settings pydantic-settings class."""

    def _make(self, **kwargs):
        """Create a Settings instance that ignores any local .env file."""
        from shieldbot.config.settings import Settings
        return Settings(_env_file=None, **kwargs)

    # -- defaults --

    def test_defaults(self):
        s = self._make()
        assert s.LOG_LEVEL == "INFO"
        assert s.AUTH_DIR == "./auth"
        assert s.PLUGINS_DIR == "./plugins"
        assert s.LEDGER_PATH == "./.seen_jids.json"
        assert s.PAIRING_PROMPT is True
        assert s.ANTISPAM_MAX_MESSAGES == 5
        assert s.ANTISPAM_WINDOW_SECONDS == 10.0
        assert s.RECONNECT_DELAY_MS == 2500
        assert s.RECONNECT_MAX_ATTEMPTS == 0
        assert s.SHIELD_MAX_DEPTH == 10
        assert s.PROTOCOL_CLIENT == ""

    # -- environment --

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PAIRING_PROMPT", "false")
        monkeypatch.setenv("ANTISPAM_MAX_MESSAGES", "9")
        s = self._make()
        assert s.PAIRING_PROMPT is False
        assert s.ANTISPAM_MAX_MESSAGES == 9

    # -- _normalize_log_level validator --

    def test_log_level_upper_cased(self):
        assert self._make(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_warn_alias(self):
        assert self._make(LOG_LEVEL="warn").LOG_LEVEL == "WARNING"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            self._make(LOG_LEVEL="chatty")

    # -- _check_protocol_client validator --

    def test_protocol_client_target_accepted(self):
        s = self._make(PROTOCOL_CLIENT="mybridge.client:build")
        assert s.PROTOCOL_CLIENT == "mybridge.client:build"

    def test_malformed_protocol_client_rejected(self):
        with pytest.raises(ValidationError):
            self._make(PROTOCOL_CLIENT="mybridge.client.build")

    # -- invite_text --

    def test_invite_text_formats_link(self):
        s = self._make(AUTO_INVITE_LINK="https://example.invalid/x", INVITE_TEMPLATE="Join {link} now")
        assert s.invite_text == "Join https://example.invalid/x now"
