"""
Protocol collaborator interface for shieldbot.

Public API:
    - ProtocolClient / SessionHandle: what shieldbot needs from the wire client
    - SessionEvent, ConnectionUpdate, DisconnectReason: event vocabulary
    - InboundMessage / SanitizedMessage: records flowing through the pipeline
    - load_protocol_client: build the configured client
"""

from .base import (
    BROADCAST_STATUS_ID,
    GROUP_SUFFIX,
    ConnectionUpdate,
    DisconnectReason,
    InboundMessage,
    ProtocolClient,
    ReplySender,
    SanitizedMessage,
    SessionEvent,
    SessionHandle,
)
from .factory import load_protocol_client

__all__ = [
    "BROADCAST_STATUS_ID",
    "GROUP_SUFFIX",
    "ConnectionUpdate",
    "DisconnectReason",
    "InboundMessage",
    "ProtocolClient",
    "ReplySender",
    "SanitizedMessage",
    "SessionEvent",
    "SessionHandle",
    "load_protocol_client",
]
