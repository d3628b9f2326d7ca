"""
Plugin registry for shieldbot.

The registry is populated once at startup and is read-only for the rest of
the process; there is no hot reload. Discovery is injected, so tests can
pass any object with a ``load()`` method returning name -> PluginHandle.

Example:
    from shieldbot.plugins import PluginLoader, PluginRegistry

    registry = PluginRegistry.from_loader(PluginLoader("./plugins"))
    for handle in registry.matching(message):
        await handle.invoke(message)
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterator, Mapping, Protocol
import logging

from shieldbot.plugins.sdk import PluginHandle
from shieldbot.protocol.base import SanitizedMessage

logger = logging.getLogger(__name__)


class PluginSource(Protocol):
    """Anything that can produce the startup set of plugins."""

    def load(self) -> Mapping[str, PluginHandle]:
        ...


class PluginRegistry:
    """Read-only name -> PluginHandle lookup table."""

    def __init__(self, handles: Mapping[str, PluginHandle] | None = None):
        self._handles = MappingProxyType(dict(handles or {}))

    @classmethod
    def from_loader(cls, source: PluginSource) -> "PluginRegistry":
        return cls(source.load())

    def get(self, name: str) -> PluginHandle | None:
        return self._handles.get(name)

    def names(self) -> list[str]:
        return list(self._handles)

    def handles(self) -> list[PluginHandle]:
        return list(self._handles.values())

    def matching(self, message: SanitizedMessage) -> list[PluginHandle]:
        """Handles whose ``matches`` accepts the message.

        A handler whose ``matches`` raises is skipped for this message.
        """
        selected = []
        for handle in self._handles.values():
            try:
                if handle.matches(message):
                    selected.append(handle)
            except Exception as e:
                logger.warning(f"Plugin {handle.name} matches() failed: {e}")
        return selected

    def __iter__(self) -> Iterator[PluginHandle]:
        return iter(self._handles.values())

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    def __repr__(self) -> str:
        return f"<PluginRegistry plugins={len(self._handles)}>"
