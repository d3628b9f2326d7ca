"""Dispatcher: the last pipeline stage.

Routes a sanitized message to every plugin handler that accepts it and sends
handler replies back to the conversation. Handler failures are contained
here; one failing plugin never stops the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from shieldbot.errors import HandlerError
from shieldbot.plugins.registry import PluginRegistry
from shieldbot.protocol.base import ReplySender, SanitizedMessage

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """What happened to one message in the dispatcher.

    Attributes:
        invoked: Plugins whose handler ran.
        replied: Plugins whose reply was sent.
        failed: Plugins whose handler (or reply) failed.
        ignored: True when the message was dropped before routing.
    """

    invoked: List[str] = field(default_factory=list)
    replied: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    ignored: bool = False


class Dispatcher:
    """Routes SanitizedMessages to registered handlers."""

    def __init__(self, registry: PluginRegistry, sender: ReplySender) -> None:
        self._registry = registry
        self._sender = sender

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    async def dispatch(self, message: SanitizedMessage) -> DispatchReport:
        """Invoke every matching handler in registry order.

        Args:
            message: A message that passed Shield, Sanitizer and Anti-Spam.

        Returns:
            A DispatchReport. Never raises for handler failures.
        """
        report = DispatchReport()

        if message.is_broadcast_status:
            logger.info(f"Ignoring status broadcast {message.id}")
            report.ignored = True
            return report

        for handle in self._registry.matching(message):
            report.invoked.append(handle.name)
            try:
                result = await self._invoke(handle, message)
            except HandlerError as e:
                logger.error(f"{e} (message {message.id} from {message.remote_id})")
                report.failed.append(handle.name)
                continue

            if result is None or not result.reply:
                continue
            try:
                await self._sender.send_text(message.remote_id, result.reply)
            except Exception as e:
                logger.error(
                    f"Could not deliver reply from {handle.name} to {message.remote_id}: {e}"
                )
                report.failed.append(handle.name)
            else:
                report.replied.append(handle.name)

        if not report.invoked:
            logger.debug(f"No handler accepted message {message.id}")
        return report

    @staticmethod
    async def _invoke(handle, message: SanitizedMessage):
        try:
            return await handle.invoke(message)
        except Exception as e:
            raise HandlerError(handle.name, e) from e
