"""Tests for the inbound safety pipeline.

Tests cover:
- Dispatcher routing, reply delivery and handler failure isolation
- MessagePipeline stage order, short-circuiting and outcomes
- Catch boundaries between stages
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from shieldbot.errors import TransientConnectionError
from shieldbot.pipeline import (
    Dispatcher,
    MessagePipeline,
    PipelineOutcome,
)
from shieldbot.plugins import FunctionHandler, HandlerResult, PluginHandle, PluginRegistry
from shieldbot.protocol.base import InboundMessage, SanitizedMessage
from shieldbot.security import AntiSpam, AntiSpamConfig, Sanitizer, Shield


DIRECT = "24177000000@s.whatsapp.net"


def _raw(text="hello", remote_id=DIRECT, from_me=False, msg_id="M1"):
    return {
        "key": {"id": msg_id, "remoteJid": remote_id, "fromMe": from_me},
        "message": {"conversation": text},
    }


def _inbound(**kwargs):
    return InboundMessage.from_raw(_raw(**kwargs))


def _sanitized(**kwargs):
    source = _inbound(**kwargs)
    return SanitizedMessage(source=source, text=kwargs.get("text", "hello"))


class EchoHandler:
    """Replies with the message text."""

    def __init__(self):
        self.seen = []

    def handle(self, message):
        self.seen.append(message)
        return HandlerResult(reply=f"echo: {message.text}")


class PingHandler:
    """Only accepts '!ping'."""

    def matches(self, message):
        return message.text == "!ping"

    async def handle(self, message):
        return "pong"


class BrokenHandler:
    def handle(self, message):
        raise RuntimeError("handler exploded")


def _registry(**handlers):
    return PluginRegistry({name: PluginHandle(name, h) for name, h in handlers.items()})


@pytest.fixture
def sender():
    sender = MagicMock()
    sender.send_text = AsyncMock()
    return sender


# =============================================================================
# Dispatcher Tests
# =============================================================================


class TestDispatcher:
    """Routing to handlers."""

    @pytest.mark.asyncio
    async def test_reply_sent_to_conversation(self, sender):
        echo = EchoHandler()
        dispatcher = Dispatcher(_registry(echo=echo), sender)

        report = await dispatcher.dispatch(_sanitized(text="hi"))

        assert report.invoked == ["echo"]
        assert report.replied == ["echo"]
        sender.send_text.assert_awaited_once_with(DIRECT, "echo: hi")

    @pytest.mark.asyncio
    async def test_matches_filters_handlers(self, sender):
        dispatcher = Dispatcher(_registry(ping=PingHandler()), sender)

        report = await dispatcher.dispatch(_sanitized(text="hello"))
        assert report.invoked == []
        sender.send_text.assert_not_awaited()

        await dispatcher.dispatch(_sanitized(text="!ping"))
        sender.send_text.assert_awaited_once_with(DIRECT, "pong")

    @pytest.mark.asyncio
    async def test_handler_failure_is_isolated(self, sender):
        """A failing handler is logged; the next handler still runs."""
        echo = EchoHandler()
        dispatcher = Dispatcher(_registry(broken=BrokenHandler(), echo=echo), sender)

        report = await dispatcher.dispatch(_sanitized())

        assert report.failed == ["broken"]
        assert report.replied == ["echo"]
        assert len(echo.seen) == 1

    @pytest.mark.asyncio
    async def test_invalid_return_type_is_handler_error(self, sender):
        handler = FunctionHandler(lambda m: 42)
        dispatcher = Dispatcher(_registry(bad=handler), sender)
        report = await dispatcher.dispatch(_sanitized())
        assert report.failed == ["bad"]
        sender.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_reply_when_handler_returns_none(self, sender):
        handler = FunctionHandler(lambda m: None)
        dispatcher = Dispatcher(_registry(quiet=handler), sender)
        report = await dispatcher.dispatch(_sanitized())
        assert report.invoked == ["quiet"]
        sender.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_ignored(self, sender):
        echo = EchoHandler()
        dispatcher = Dispatcher(_registry(echo=echo), sender)
        report = await dispatcher.dispatch(_sanitized(remote_id="status@broadcast"))
        assert report.ignored is True
        assert echo.seen == []

    @pytest.mark.asyncio
    async def test_send_failure_reported(self, sender):
        sender.send_text.side_effect = TransientConnectionError("offline")
        dispatcher = Dispatcher(_registry(echo=EchoHandler()), sender)
        report = await dispatcher.dispatch(_sanitized())
        assert report.failed == ["echo"]
        assert report.replied == []


# =============================================================================
# MessagePipeline Tests
# =============================================================================


class TestMessagePipeline:
    """End-to-end stage ordering."""

    @pytest.fixture
    def echo(self):
        return EchoHandler()

    @pytest.fixture
    def pipeline(self, sender, echo):
        antispam = AntiSpam(
            sender,
            AntiSpamConfig(max_messages=2, window_seconds=60, warning_text="slow down"),
        )
        return MessagePipeline(
            Shield(),
            Sanitizer(),
            antispam,
            Dispatcher(_registry(echo=echo), sender),
        )

    @pytest.mark.asyncio
    async def test_clean_message_dispatched(self, pipeline, sender, echo):
        result = await pipeline.process(_inbound(text="hi"))

        assert result.outcome == PipelineOutcome.DISPATCHED
        assert result.delivered
        assert result.sanitized.text == "hi"
        sender.send_text.assert_awaited_once_with(DIRECT, "echo: hi")

    @pytest.mark.asyncio
    async def test_shield_block_means_no_send_no_dispatch(self, pipeline, sender, echo):
        raw = _raw()
        del raw["message"]

        result = await pipeline.process(InboundMessage.from_raw(raw))

        assert result.outcome == PipelineOutcome.BLOCKED
        assert echo.seen == []
        sender.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_own_message_blocked(self, pipeline, echo):
        result = await pipeline.process(_inbound(from_me=True))
        assert result.outcome == PipelineOutcome.BLOCKED
        assert echo.seen == []

    @pytest.mark.asyncio
    async def test_over_threshold_single_warning_no_dispatch(self, pipeline, sender, echo):
        for i in range(2):
            await pipeline.process(_inbound(msg_id=f"M{i}"))
        sender.send_text.reset_mock()
        echo.seen.clear()

        results = [await pipeline.process(_inbound(msg_id=f"X{i}")) for i in range(3)]

        assert all(r.outcome == PipelineOutcome.RATE_LIMITED for r in results)
        assert echo.seen == []
        sender.send_text.assert_awaited_once_with(DIRECT, "slow down")

    @pytest.mark.asyncio
    async def test_status_broadcast_ignored(self, pipeline, sender, echo):
        result = await pipeline.process(_inbound(remote_id="status@broadcast"))
        assert result.outcome == PipelineOutcome.IGNORED_BROADCAST
        assert echo.seen == []
        sender.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_handler(self, sender):
        pipeline = MessagePipeline(
            Shield(), Sanitizer(), AntiSpam(sender), Dispatcher(PluginRegistry(), sender)
        )
        result = await pipeline.process(_inbound())
        assert result.outcome == PipelineOutcome.NO_HANDLER

    @pytest.mark.asyncio
    async def test_stage_exception_is_contained(self, sender, echo):
        """An exception escaping a stage drops the message with ERROR."""
        antispam = MagicMock()
        antispam.check = AsyncMock(side_effect=RuntimeError("boom"))
        pipeline = MessagePipeline(
            Shield(), Sanitizer(), antispam, Dispatcher(_registry(echo=echo), sender)
        )

        result = await pipeline.process(_inbound())

        assert result.outcome == PipelineOutcome.ERROR
        assert result.reason.startswith("antispam")
        assert echo.seen == []

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_escape(self, sender):
        pipeline = MessagePipeline(
            Shield(), Sanitizer(), AntiSpam(sender),
            Dispatcher(_registry(broken=BrokenHandler()), sender),
        )
        result = await pipeline.process(_inbound())
        assert result.outcome == PipelineOutcome.DISPATCHED
        assert result.report.failed == ["broken"]
