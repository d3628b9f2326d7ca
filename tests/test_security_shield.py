"""Test suite for shieldbot.security.shield.

Tests all components: ShieldDecision/ShieldVerdict, ShieldConfig, the
individual blocklist checks and the Shield compositor.
"""

from datetime import datetime, timezone

import pytest

from shieldbot.errors import MalformedMessageError
from shieldbot.protocol.base import InboundMessage
from shieldbot.security.content import exceeds_depth, unwrap
from shieldbot.security.shield import (
    Shield,
    ShieldConfig,
    ShieldDecision,
    ShieldVerdict,
)


def _message(body=None, remote_id="24177000000@s.whatsapp.net", from_me=False, **extra):
    raw = {"key": {"id": "MSG1", "remoteJid": remote_id, "fromMe": from_me}, **extra}
    if body is not None:
        raw["message"] = body
    return InboundMessage.from_raw(raw, received_at=datetime(2024, 1, 1, tzinfo=timezone.utc))


def _nested(depth):
    node = {"conversation": "hi"}
    for _ in range(depth):
        node = {"ephemeralMessage": {"message": node}}
    return node


# =============================================================================
# ShieldDecision and ShieldVerdict Tests
# =============================================================================


class TestShieldVerdict:
    """Test the verdict types."""

    def test_decision_values(self):
        """Enum values are plain strings."""
        assert ShieldDecision.ALLOW == "ALLOW"
        assert ShieldDecision.BLOCK == "BLOCK"

    def test_blocked_property(self):
        """blocked reflects the decision."""
        assert ShieldVerdict(ShieldDecision.BLOCK, "x").blocked is True
        assert ShieldVerdict(ShieldDecision.ALLOW, "x").blocked is False

    def test_verdict_immutability(self):
        """Verdicts are frozen."""
        verdict = ShieldVerdict(ShieldDecision.BLOCK, "nope")
        with pytest.raises(Exception):  # FrozenInstanceError
            verdict.decision = ShieldDecision.ALLOW


# =============================================================================
# ShieldConfig Tests
# =============================================================================


class TestShieldConfig:
    """Test ShieldConfig construction."""

    def test_defaults(self):
        config = ShieldConfig()
        assert config.max_text_length == 20000
        assert config.max_depth == 10
        assert config.max_mentions == 256
        assert config.drop_own_messages is True

    def test_from_dict(self):
        """from_dict reads known keys and keeps defaults for the rest."""
        config = ShieldConfig.from_dict({"max_text_length": "100", "drop_own_messages": False})
        assert config.max_text_length == 100
        assert config.drop_own_messages is False
        assert config.max_depth == 10

    def test_from_settings(self):
        class _Settings:
            SHIELD_MAX_TEXT_LENGTH = 50
            SHIELD_MAX_DEPTH = 3
            SHIELD_MAX_MENTIONS = 7

        config = ShieldConfig.from_settings(_Settings())
        assert (config.max_text_length, config.max_depth, config.max_mentions) == (50, 3, 7)


# =============================================================================
# Blocklist Tests
# =============================================================================


class TestShieldBlocklist:
    """Each blocklist entry blocks; ordinary messages pass."""

    @pytest.fixture
    def shield(self):
        return Shield(ShieldConfig(max_text_length=100, max_depth=4, max_mentions=3))

    def test_plain_text_allowed(self, shield):
        verdict = shield.inspect(_message({"conversation": "hello"}))
        assert verdict.decision == ShieldDecision.ALLOW

    def test_extended_text_with_context_allowed(self, shield):
        body = {
            "extendedTextMessage": {
                "text": "reply",
                "contextInfo": {"stanzaId": "ABC", "mentionedJid": ["1@s.whatsapp.net"]},
            },
            "messageContextInfo": {"deviceListMetadata": {}},
        }
        assert not shield.inspect(_message(body)).blocked

    def test_missing_body_blocked(self, shield):
        verdict = shield.inspect(_message(None))
        assert verdict.blocked
        assert "body" in verdict.reason

    def test_empty_body_blocked(self, shield):
        assert shield.inspect(_message({})).blocked

    def test_missing_remote_id_blocked(self, shield):
        verdict = shield.inspect(_message({"conversation": "hi"}, remote_id=""))
        assert verdict.blocked
        assert "identifier" in verdict.reason

    def test_malformed_remote_id_blocked(self, shield):
        assert shield.inspect(_message({"conversation": "hi"}, remote_id="no-at-sign")).blocked

    def test_remote_id_with_trailing_newline_blocked(self, shield):
        verdict = shield.inspect(_message({"conversation": "hi"}, remote_id="a@s.whatsapp.net\n"))
        assert verdict.blocked
        assert "identifier" in verdict.reason

    def test_own_message_blocked(self, shield):
        verdict = shield.inspect(_message({"conversation": "echo"}, from_me=True))
        assert verdict.blocked
        assert "this account" in verdict.reason

    def test_own_message_allowed_when_configured(self):
        shield = Shield(ShieldConfig(drop_own_messages=False))
        assert not shield.inspect(_message({"conversation": "echo"}, from_me=True)).blocked

    def test_control_only_envelope_blocked(self, shield):
        verdict = shield.inspect(_message({"protocolMessage": {"type": 0}}))
        assert verdict.blocked
        assert "protocolMessage" in verdict.reason

    def test_oversized_text_blocked(self, shield):
        verdict = shield.inspect(_message({"conversation": "a" * 101}))
        assert verdict.blocked
        assert "oversized text" in verdict.reason

    def test_oversized_caption_blocked(self, shield):
        body = {"imageMessage": {"caption": "b" * 500, "mimetype": "image/jpeg"}}
        assert shield.inspect(_message(body)).blocked

    def test_wrapper_bomb_blocked(self, shield):
        verdict = shield.inspect(_message(_nested(10)))
        assert verdict.blocked
        assert "nested" in verdict.reason

    def test_shallow_wrapper_allowed(self, shield):
        assert not shield.inspect(_message(_nested(1))).blocked

    def test_oversized_mentions_blocked(self, shield):
        mentions = [f"{i}@s.whatsapp.net" for i in range(4)]
        body = {"extendedTextMessage": {"text": "hi", "contextInfo": {"mentionedJid": mentions}}}
        verdict = shield.inspect(_message(body))
        assert verdict.blocked
        assert "mention" in verdict.reason

    def test_invisible_flood_blocked(self):
        shield = Shield()
        text = "a" + "\u200b" * 200
        verdict = shield.inspect(_message({"conversation": text}))
        assert verdict.blocked
        assert "invisible" in verdict.reason

    def test_bidi_override_flood_blocked(self):
        shield = Shield()
        text = "\u202e\u2066" * 50 + "hello"
        assert shield.inspect(_message({"conversation": text})).blocked

    def test_short_text_with_zero_width_allowed(self):
        """A couple of zero-width joiners in ordinary text is not a flood."""
        shield = Shield()
        assert not shield.inspect(_message({"conversation": "hi\u200bthere"})).blocked

    def test_stacked_combining_marks_blocked(self):
        shield = Shield()
        text = "Z" + "\u0301" * 40
        verdict = shield.inspect(_message({"conversation": text}))
        assert verdict.blocked

    def test_accented_text_allowed(self):
        shield = Shield()
        assert not shield.inspect(_message({"conversation": "caf\u00e9 ol\u00e9"})).blocked


# =============================================================================
# Shield Compositor Tests
# =============================================================================


class TestShield:
    """Test the compositor."""

    def test_validate_raises_with_reason(self):
        with pytest.raises(MalformedMessageError, match="missing message body"):
            Shield().validate(_message(None))

    def test_check_crash_is_block(self):
        """An exception inside a check fails closed."""
        shield = Shield()

        def broken(message, config):
            raise RuntimeError("boom")

        shield.add_check(broken)
        verdict = shield.inspect(_message({"conversation": "hi"}))
        assert verdict.blocked
        assert "RuntimeError" in verdict.reason

    def test_extra_check_can_block(self):
        shield = Shield()
        shield.add_check(lambda m, c: "banned word" if "spam" in str(m.body) else None)
        assert shield.inspect(_message({"conversation": "buy spam"})).blocked
        assert not shield.inspect(_message({"conversation": "hello"})).blocked

    def test_inspect_does_not_mutate(self):
        body = {"conversation": "hello"}
        message = _message(body)
        Shield().inspect(message)
        assert message.body == {"conversation": "hello"}


# =============================================================================
# Content helper Tests
# =============================================================================


class TestContentHelpers:
    """Test the envelope walkers used by the Shield."""

    def test_exceeds_depth(self):
        assert exceeds_depth({"a": {"b": {}}}, 1) is True
        assert exceeds_depth({"a": {"b": {}}}, 2) is False
        assert exceeds_depth("scalar", 0) is False

    def test_unwrap_nested_wrappers(self):
        inner = {"conversation": "hi"}
        body = {"viewOnceMessageV2": {"message": {"ephemeralMessage": {"message": inner}}}}
        assert unwrap(body) == inner

    def test_unwrap_plain_body(self):
        body = {"conversation": "hi"}
        assert unwrap(body) is body
