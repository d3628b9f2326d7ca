"""First-contact side channel.

Watches the raw inbound stream independently of the safety pipeline and
sends a one-time invitation to every direct conversation it has never seen.
The ledger write happens before the send: a crash in between can repeat the
invite on the next run, but a recorded conversation is never invited again.
"""

from __future__ import annotations

import logging

from shieldbot.errors import PersistenceError
from shieldbot.protocol.base import InboundMessage, ReplySender
from shieldbot.storage.ledger import ContactLedger

logger = logging.getLogger(__name__)


class FirstContactGreeter:
    """Sends the invite text to first-time direct conversations."""

    def __init__(
        self,
        ledger: ContactLedger,
        sender: ReplySender,
        invite_text: str,
    ) -> None:
        self._ledger = ledger
        self._sender = sender
        self._invite_text = invite_text

    @property
    def ledger(self) -> ContactLedger:
        return self._ledger

    def should_greet(self, message: InboundMessage) -> bool:
        """Whether *message* is eligible for the first-contact invite."""
        if message.body is None or message.from_me:
            return False
        return message.is_direct

    async def observe(self, message: InboundMessage) -> bool:
        """Greet the conversation if this is its first message.

        Returns:
            True when an invitation was sent.
        """
        if not self.should_greet(message):
            return False

        remote_id = message.remote_id
        try:
            is_new = await self._ledger.record_if_new(remote_id)
        except PersistenceError as e:
            logger.error(f"Could not record first contact {remote_id}: {e}")
            return False

        if not is_new:
            return False

        try:
            await self._sender.send_text(remote_id, self._invite_text)
        except Exception as e:
            logger.error(f"Failed to send invite to {remote_id}: {e}")
            return False

        logger.info(f"Sent first-contact invite to {remote_id}")
        return True
