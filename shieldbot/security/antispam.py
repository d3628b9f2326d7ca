"""Flood control for inbound conversations.

The Anti-Spam stage asks an ActivityTracker whether a conversation is over
its message threshold. Over-threshold messages are dropped, and the
conversation receives one warning reply per window. This is the only
pipeline stage allowed to send a message because of a rejection.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Protocol, runtime_checkable

from shieldbot.protocol.base import BROADCAST_STATUS_ID, ReplySender, SanitizedMessage
from shieldbot.security.shield import ShieldDecision, ShieldVerdict

logger = logging.getLogger(__name__)


@runtime_checkable
class ActivityTracker(Protocol):
    """Keeps per-conversation activity counters."""

    def is_over_threshold(self, conversation_id: str) -> bool:
        """Record one message for the conversation and report a violation."""
        ...


class SlidingWindowTracker:
    """Sliding-window counter per conversation.

    A conversation is over threshold when it sent more than
    ``max_messages`` within the last ``window_seconds``. Conversations that
    went quiet for a full window are forgotten, at most once per window.
    """

    def __init__(
        self,
        max_messages: int = 5,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_messages = max_messages
        self.window = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._next_prune = clock() + window_seconds

    def is_over_threshold(self, conversation_id: str) -> bool:
        now = self._clock()
        if now >= self._next_prune:
            self.prune()

        hits = self._hits.setdefault(conversation_id, deque())
        while hits and now - hits[0] >= self.window:
            hits.popleft()
        hits.append(now)
        return len(hits) > self.max_messages

    def prune(self) -> int:
        """Forget conversations with no activity in the window."""
        now = self._clock()
        stale = [
            cid for cid, hits in self._hits.items()
            if not hits or now - hits[-1] >= self.window
        ]
        for cid in stale:
            del self._hits[cid]
        self._next_prune = now + self.window
        if stale:
            logger.debug(f"Anti-spam forgot {len(stale)} idle conversations")
        return len(stale)

    def __len__(self) -> int:
        return len(self._hits)


@dataclass
class AntiSpamConfig:
    """Anti-spam settings.

    Attributes:
        max_messages: Messages tolerated per window.
        window_seconds: Window length; also the warning cooldown.
        warning_text: Reply sent to a flooding conversation.
    """

    max_messages: int = 5
    window_seconds: float = 10.0
    warning_text: str = "⚠️ *ANTI SPAM ACTIVE* Please slow down a little."

    @classmethod
    def from_settings(cls, settings: Any) -> "AntiSpamConfig":
        return cls(
            max_messages=settings.ANTISPAM_MAX_MESSAGES,
            window_seconds=settings.ANTISPAM_WINDOW_SECONDS,
            warning_text=settings.ANTISPAM_WARNING,
        )

    def build_tracker(self) -> SlidingWindowTracker:
        return SlidingWindowTracker(self.max_messages, self.window_seconds)


class AntiSpam:
    """Pipeline stage dropping messages from flooding conversations."""

    def __init__(
        self,
        sender: ReplySender,
        config: AntiSpamConfig | None = None,
        tracker: ActivityTracker | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or AntiSpamConfig()
        self._sender = sender
        self._tracker = tracker or self.config.build_tracker()
        self._clock = clock
        self._warned_at: Dict[str, float] = {}
        self._next_sweep = clock() + self.config.window_seconds

    async def check(self, message: SanitizedMessage) -> ShieldVerdict:
        """Return ALLOW, or BLOCK after warning the conversation."""
        remote_id = message.remote_id
        self._expire_warnings()
        try:
            over = self._tracker.is_over_threshold(remote_id)
        except Exception as e:
            logger.error(f"Activity tracker failed for {remote_id}: {e}")
            return ShieldVerdict(ShieldDecision.BLOCK, "activity tracker unavailable")

        if not over:
            return ShieldVerdict(ShieldDecision.ALLOW, "under threshold")

        logger.warning(f"Message {message.id} from {remote_id} blocked by anti-spam")
        if self._should_warn(remote_id):
            await self._warn(remote_id)
        return ShieldVerdict(ShieldDecision.BLOCK, "conversation over message threshold")

    def _should_warn(self, remote_id: str) -> bool:
        # Never reply to the status broadcast.
        if not remote_id or remote_id == BROADCAST_STATUS_ID:
            return False
        last = self._warned_at.get(remote_id)
        return last is None or self._clock() - last >= self.config.window_seconds

    def _expire_warnings(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        window = self.config.window_seconds
        self._warned_at = {
            cid: at for cid, at in self._warned_at.items() if now - at < window
        }
        self._next_sweep = now + window

    @property
    def pending_warnings(self) -> int:
        """Conversations still inside their warning cooldown."""
        self._expire_warnings()
        return len(self._warned_at)

    async def _warn(self, remote_id: str) -> None:
        self._warned_at[remote_id] = self._clock()
        try:
            await self._sender.send_text(remote_id, self.config.warning_text)
        except Exception as e:
            logger.warning(f"Could not send anti-spam warning to {remote_id}: {e}")
