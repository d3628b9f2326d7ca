"""
Plugin SDK for shieldbot.

A plugin is a Python file in the plugins directory that exposes exactly one
``HANDLER`` attribute. The handler receives every SanitizedMessage that
survived the safety pipeline and may return a reply for the conversation.

The handler uses Python's Protocol for structural subtyping, so plugins do
not need to inherit from any base class.

Example - object handler:
    from shieldbot.plugins.sdk import HandlerResult

    class PingHandler:
        def matches(self, message) -> bool:
            return message.text.strip().lower() == "!ping"

        async def handle(self, message) -> HandlerResult:
            return HandlerResult(reply="pong")

    HANDLER = PingHandler()

Example - plain function:
    def HANDLER(message):
        if message.text == "!help":
            return "Commands: !ping, !help"
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

from shieldbot.protocol.base import SanitizedMessage


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of a handler invocation.

    Attributes:
        reply: Text to send back to the conversation, if any.
        handled: Whether the handler acted on the message.
    """

    reply: str | None = None
    handled: bool = True


@runtime_checkable
class Handler(Protocol):
    """Capability interface for business-logic plugins.

    Required Methods:
        handle: Process one message; may be sync or async and may return a
            HandlerResult, a reply string, or None.

    Optional Methods:
        matches: Return False to skip a message. Handlers without it
            receive every message.
    """

    def handle(self, message: SanitizedMessage) -> Any:
        ...


class FunctionHandler:
    """Adapts a plain (sync or async) callable to the Handler interface."""

    def __init__(self, func: Callable[[SanitizedMessage], Any]):
        self._func = func

    @property
    def func(self) -> Callable[[SanitizedMessage], Any]:
        return self._func

    def handle(self, message: SanitizedMessage) -> Any:
        return self._func(message)

    def __repr__(self) -> str:
        name = getattr(self._func, "__name__", repr(self._func))
        return f"<FunctionHandler {name}>"


def coerce_result(value: Any) -> HandlerResult | None:
    """Normalize whatever a handler returned.

    Raises:
        TypeError: If the value is not None, a string or a HandlerResult.
    """
    if value is None or isinstance(value, HandlerResult):
        return value
    if isinstance(value, str):
        return HandlerResult(reply=value)
    raise TypeError(f"Unsupported handler result type: {type(value).__name__}")


@dataclass(frozen=True)
class PluginHandle:
    """A loaded plugin: its name and its handler.

    Attributes:
        name: Plugin name (the file stem).
        handler: Object satisfying the Handler interface.
    """

    name: str
    handler: Handler

    def matches(self, message: SanitizedMessage) -> bool:
        matcher = getattr(self.handler, "matches", None)
        if matcher is None:
            return True
        return bool(matcher(message))

    async def invoke(self, message: SanitizedMessage) -> HandlerResult | None:
        """Run the handler, awaiting it when it is a coroutine."""
        value = self.handler.handle(message)
        if inspect.isawaitable(value):
            value = await value
        return coerce_result(value)
