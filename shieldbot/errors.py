"""Error taxonomy for shieldbot.

Session-level errors decide between reconnecting and stopping; message-level
errors never leave the pipeline.
"""

from __future__ import annotations

from pathlib import Path


class ShieldbotError(Exception):
    """Base exception for shieldbot errors."""
    pass


class TransientConnectionError(ShieldbotError):
    """Raised when the connection dropped but can be re-established."""
    pass


class TerminalAuthError(ShieldbotError):
    """Raised when the account logged this device out.

    Recovery requires a new pairing interaction.
    """
    pass


class MalformedMessageError(ShieldbotError):
    """Raised for inbound payloads the Shield refuses to process."""
    pass


class HandlerError(ShieldbotError):
    """Raised when a plugin handler fails on a message.

    Attributes:
        plugin_name: Name of the failing plugin.
        original: The exception raised by the handler.
    """

    def __init__(self, plugin_name: str, original: Exception):
        self.plugin_name = plugin_name
        self.original = original
        super().__init__(f"Handler '{plugin_name}' failed: {original}")


class PersistenceError(ShieldbotError):
    """Raised when a durable store cannot be read or written.

    Attributes:
        path: The file the operation targeted.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Persistence failure on {path}: {reason}")


class PairingError(ShieldbotError):
    """Raised when the pairing flow cannot start."""
    pass


class PluginLoadError(ShieldbotError):
    """Raised when a plugin file yields no usable handler.

    Attributes:
        path: The plugin file.
        reason: Why it was skipped.
        original: The exception raised while importing, if any.
    """

    def __init__(self, path: Path, reason: str, original: Exception | None = None):
        self.path = path
        self.reason = reason
        self.original = original
        super().__init__(f"{path.name}: {reason}")

    @property
    def plugin_name(self) -> str:
        return self.path.stem
