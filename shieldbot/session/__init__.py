"""shieldbot session lifecycle: controller, pairing and reconnect policy."""

from shieldbot.session.backoff import BackoffPolicy
from shieldbot.session.controller import (
    ConnectionState,
    Session,
    SessionController,
    SessionReplySender,
)
from shieldbot.session.pairing import PairingFlow, normalize_identifier

__all__ = [
    "BackoffPolicy",
    "ConnectionState",
    "PairingFlow",
    "Session",
    "SessionController",
    "SessionReplySender",
    "normalize_identifier",
]
