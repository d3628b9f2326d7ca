"""Tests for shieldbot.runtime wiring."""

import pytest

from shieldbot.config.settings import Settings
from shieldbot.runtime import build_controller
from shieldbot.session import PairingFlow, SessionController
from shieldbot.protocol.base import SessionEvent
from shieldbot.storage import CredentialBundle, CredentialStore


class _Handle:
    def __init__(self):
        self.callbacks = {}
        self.sent = []

    async def request_pairing_code(self, identifier):
        return "CODE"

    async def send(self, conversation_id, content):
        self.sent.append((conversation_id, content))

    def on(self, event, callback):
        self.callbacks[event] = callback

    async def close(self):
        pass


class _Client:
    def __init__(self):
        self.handle = _Handle()

    async def fetch_latest_version(self):
        return (2, 3000)

    async def connect(self, credentials, version, *, get_message):
        return self.handle


@pytest.fixture
def settings(tmp_path):
    plugins = tmp_path / "plugins"
    plugins.mkdir()
    (plugins / "echo.py").write_text(
        "def HANDLER(message):\n"
        "    if message.text.startswith('!echo '):\n"
        "        return message.text[6:]\n"
    )
    return Settings(
        _env_file=None,
        AUTH_DIR=str(tmp_path / "auth"),
        PLUGINS_DIR=str(plugins),
        LEDGER_PATH=str(tmp_path / ".seen_jids.json"),
        AUTO_INVITE_LINK="https://example.invalid/g",
        INVITE_TEMPLATE="Join {link}",
    )


class TestBuildController:
    """End-to-end wiring from settings."""

    def test_requires_protocol_client(self, settings):
        with pytest.raises(ValueError):
            build_controller(settings)

    @pytest.mark.asyncio
    async def test_message_flows_through_pipeline_and_greeter(self, settings):
        """A first '!echo' message is answered by the plugin and greeted once."""
        CredentialStore(settings.AUTH_DIR).save(CredentialBundle(registered=True))
        client = _Client()
        controller = build_controller(settings, client, pairing=PairingFlow(prompt=lambda: "1"))
        assert isinstance(controller, SessionController)

        await controller.start()
        handle = client.handle
        await handle.callbacks[SessionEvent.CONNECTION_UPDATE]({"connection": "open"})

        raw = {"key": {"id": "M1", "remoteJid": "A@s.whatsapp.net"}, "message": {"conversation": "!echo hi"}}
        await handle.callbacks[SessionEvent.MESSAGES_UPSERT]({"messages": [raw]})
        await handle.callbacks[SessionEvent.MESSAGES_UPSERT]({"messages": [dict(raw, key={"id": "M2", "remoteJid": "A@s.whatsapp.net"})]})

        assert handle.sent == [
            ("A@s.whatsapp.net", {"text": "hi"}),
            ("A@s.whatsapp.net", {"text": "Join https://example.invalid/g"}),
            ("A@s.whatsapp.net", {"text": "hi"}),
        ]
        await controller.stop()
