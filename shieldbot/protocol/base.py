"""
Protocol collaborator contract for shieldbot.

The wire protocol client (encryption, framing, transport) lives outside this
package. This module defines the surface shieldbot consumes from it and the
immutable message records that flow through the safety pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Protocol, runtime_checkable


BROADCAST_STATUS_ID = "status@broadcast"
GROUP_SUFFIX = "@g.us"


class SessionEvent(str, Enum):
    """Events a session handle can deliver to subscribers."""

    MESSAGES_UPSERT = "messages.upsert"
    PRESENCE_UPDATE = "presence.update"
    CONNECTION_UPDATE = "connection.update"
    CREDS_UPDATE = "creds.update"


class DisconnectReason(IntEnum):
    """Close codes reported by the messaging network.

    Only LOGGED_OUT is terminal; every other reason is recoverable.
    """

    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515


@dataclass(frozen=True)
class ConnectionUpdate:
    """A connection-status change reported by the session handle.

    Attributes:
        connection: "connecting", "open" or "close" (None for partial updates).
        status_code: Close code when ``connection`` is "close".
        error: Human-readable close error, if any.
    """

    connection: str | None = None
    status_code: int | None = None
    error: str | None = None

    @property
    def close_reason(self) -> DisconnectReason | None:
        if self.status_code is None:
            return None
        try:
            return DisconnectReason(self.status_code)
        except ValueError:
            return None

    @property
    def is_logged_out(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConnectionUpdate":
        """Build an update from the network's raw event shape.

        Accepts ``{"connection": "close", "lastDisconnect": {"error":
        {"output": {"statusCode": 401}}}}`` as emitted by the protocol client.
        """
        last = data.get("lastDisconnect") or {}
        error = last.get("error") if isinstance(last, Mapping) else None
        status_code = None
        if isinstance(error, Mapping):
            output = error.get("output") or {}
            status_code = output.get("statusCode") if isinstance(output, Mapping) else None
            error_text = error.get("message") or (str(status_code) if status_code else None)
        else:
            error_text = str(error) if error is not None else None
        return cls(
            connection=data.get("connection"),
            status_code=int(status_code) if status_code is not None else None,
            error=error_text,
        )


@dataclass(frozen=True)
class InboundMessage:
    """
    Immutable inbound message as delivered by the protocol client.

    Every pipeline stage reads this record; none mutates it. Stages that
    need cleaned content derive a SanitizedMessage instead.

    Attributes:
        id: Network message id.
        remote_id: Conversation identifier the message belongs to.
        is_group: Whether the conversation is a group.
        is_broadcast_status: Whether this is an ephemeral status update.
        raw_payload: The full raw message mapping.
        timestamp_received: When shieldbot received the message.
        from_me: Whether the message was sent by this account.
    """

    id: str
    remote_id: str
    is_group: bool
    is_broadcast_status: bool
    raw_payload: Mapping[str, Any]
    timestamp_received: datetime
    from_me: bool = False

    @property
    def body(self) -> Any:
        """The message content node (None when absent)."""
        return self.raw_payload.get("message")

    @property
    def is_direct(self) -> bool:
        return bool(self.remote_id) and not self.is_group and not self.is_broadcast_status

    @classmethod
    def from_raw(cls, raw: Any, received_at: datetime | None = None) -> "InboundMessage":
        """Normalize a raw protocol message.

        Never raises: fields that cannot be read become empty values and the
        Shield decides whether the message is acceptable.
        """
        payload: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
        key = payload.get("key")
        if not isinstance(key, Mapping):
            key = {}
        remote_id = key.get("remoteJid")
        remote_id = remote_id if isinstance(remote_id, str) else ""
        message_id = key.get("id")
        return cls(
            id=str(message_id) if message_id is not None else "",
            remote_id=remote_id,
            is_group=remote_id.endswith(GROUP_SUFFIX),
            is_broadcast_status=remote_id == BROADCAST_STATUS_ID,
            raw_payload=payload,
            timestamp_received=received_at or datetime.now(timezone.utc),
            from_me=bool(key.get("fromMe", False)),
        )


@dataclass(frozen=True)
class SanitizedMessage:
    """
    Cleaned view of an InboundMessage that passed the Shield.

    Attributes:
        source: The originating inbound message.
        text: Cleaned, length-bounded text content ("" if none).
        payload: Allow-listed, cleaned content fields (read-only).
        flags: Names of fields that were removed or altered.
    """

    source: InboundMessage
    text: str
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    flags: frozenset[str] = frozenset()

    @property
    def remote_id(self) -> str:
        return self.source.remote_id

    @property
    def id(self) -> str:
        return self.source.id

    @property
    def is_group(self) -> bool:
        return self.source.is_group

    @property
    def is_broadcast_status(self) -> bool:
        return self.source.is_broadcast_status


EventCallback = Callable[[Any], Awaitable[None] | None]
MessageLookup = Callable[[Mapping[str, Any]], Awaitable[Any]]


@runtime_checkable
class SessionHandle(Protocol):
    """An open connection to the messaging network.

    The handle delivers events one at a time, in network order, to the
    callbacks registered with ``on``.
    """

    async def request_pairing_code(self, identifier: str) -> str:
        """Request a pairing code for a normalized phone-style identifier."""
        ...

    async def send(self, conversation_id: str, content: dict[str, Any]) -> Any:
        """Send content (e.g. ``{"text": "..."}``) to a conversation."""
        ...

    def on(self, event: SessionEvent, callback: EventCallback) -> None:
        """Subscribe a callback to an event."""
        ...

    async def close(self) -> None:
        """Release the connection."""
        ...


@runtime_checkable
class ProtocolClient(Protocol):
    """Factory for session handles."""

    async def fetch_latest_version(self) -> tuple[int, ...]:
        """Return the protocol version to announce when connecting."""
        ...

    async def connect(
        self,
        credentials: Any,
        version: tuple[int, ...],
        *,
        get_message: MessageLookup,
    ) -> SessionHandle:
        """Open a session with the given credentials."""
        ...


@runtime_checkable
class ReplySender(Protocol):
    """Outbound text channel used by pipeline stages."""

    async def send_text(self, conversation_id: str, text: str) -> None:
        ...
