"""Content normalization for Shield-approved messages.

Produces a SanitizedMessage carrying cleaned, length-bounded text and a
small allow-listed payload. The sanitizer never raises: content it cannot
make sense of degrades to an empty SanitizedMessage flagged ``degraded``.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Set, Tuple

from shieldbot.protocol.base import InboundMessage, SanitizedMessage
from shieldbot.security.content import (
    CONTROL_RE,
    INVISIBLE_RE,
    combining_run_re,
    content_types,
    iter_mention_lists,
    primary_text,
    unwrap,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Flags
# ---------------------------------------------------------------------------

FLAG_CONTROL_CHARS = "control_chars"
FLAG_INVISIBLE_CHARS = "invisible_chars"
FLAG_COMBINING_MARKS = "combining_marks"
FLAG_TRUNCATED = "truncated"
FLAG_UNWRAPPED = "unwrapped"
FLAG_UNKNOWN_TYPE = "unknown_type"
FLAG_MENTIONS_DROPPED = "mentions_dropped"
FLAG_DEGRADED = "degraded"

_KNOWN_TYPES = frozenset({
    "conversation",
    "extendedTextMessage",
    "imageMessage",
    "videoMessage",
    "audioMessage",
    "documentMessage",
    "stickerMessage",
    "contactMessage",
    "locationMessage",
    "reactionMessage",
    "buttonsResponseMessage",
    "listResponseMessage",
    "templateButtonReplyMessage",
})
_MEDIA_TYPES = frozenset({
    "imageMessage",
    "videoMessage",
    "audioMessage",
    "documentMessage",
    "stickerMessage",
})
_JID_RE = re.compile(r"[\w.+:-]{1,128}@[\w.-]{1,64}")


@dataclass
class SanitizerConfig:
    """Sanitizer limits.

    Attributes:
        max_text_length: Cleaned text is truncated to this many characters.
        max_mentions: Mentions kept in the payload.
        max_combining_marks: Marks kept per base character after NFC;
            longer runs are cut down to this many.
    """

    max_text_length: int = 4096
    max_mentions: int = 64
    max_combining_marks: int = 4

    @classmethod
    def from_settings(cls, settings: Any) -> "SanitizerConfig":
        return cls(max_text_length=settings.SANITIZER_MAX_TEXT_LENGTH)


# ---------------------------------------------------------------------------
# Sanitizer
# ---------------------------------------------------------------------------

class Sanitizer:
    """Derives a SanitizedMessage from a Shield-approved InboundMessage."""

    def __init__(self, config: SanitizerConfig | None = None) -> None:
        self.config = config or SanitizerConfig()
        if self.config.max_combining_marks < 1:
            raise ValueError("max_combining_marks must be at least 1")
        self._combining_run = combining_run_re(self.config.max_combining_marks)

    def clean_text(self, text: str, flags: Set[str]) -> str:
        """Strip unsafe characters from *text*, recording what changed."""
        cleaned = CONTROL_RE.sub("", text)
        if cleaned != text:
            flags.add(FLAG_CONTROL_CHARS)

        stripped = INVISIBLE_RE.sub("", cleaned)
        if stripped != cleaned:
            flags.add(FLAG_INVISIBLE_CHARS)

        # NFC before capping: decomposed accents compose into one character.
        normalized = unicodedata.normalize("NFC", stripped)

        capped = self._combining_run.sub(r"\1", normalized)
        if capped != normalized:
            flags.add(FLAG_COMBINING_MARKS)

        if len(capped) > self.config.max_text_length:
            capped = capped[: self.config.max_text_length]
            flags.add(FLAG_TRUNCATED)

        return capped

    def sanitize(self, message: InboundMessage) -> SanitizedMessage:
        """Return the cleaned view of *message*. Never raises."""
        try:
            return self._sanitize(message)
        except Exception as e:
            logger.warning(f"Sanitizer degraded message {message.id}: {e}")
            return SanitizedMessage(
                source=message,
                text="",
                payload=MappingProxyType({}),
                flags=frozenset({FLAG_DEGRADED}),
            )

    def _sanitize(self, message: InboundMessage) -> SanitizedMessage:
        flags: Set[str] = set()
        body = message.body if isinstance(message.body, Mapping) else {}

        inner = unwrap(body)
        if inner is not body:
            flags.add(FLAG_UNWRAPPED)

        kinds = content_types(inner)
        kind = kinds[0] if kinds else ""
        if kind not in _KNOWN_TYPES:
            flags.add(FLAG_UNKNOWN_TYPE)

        text = self.clean_text(primary_text(inner), flags)

        payload: Dict[str, Any] = {
            "type": kind,
            "has_media": kind in _MEDIA_TYPES,
            "mentions": self._mentions(inner, flags),
        }
        quoted_id = self._quoted_id(inner.get(kind))
        if quoted_id:
            payload["quoted_id"] = quoted_id

        return SanitizedMessage(
            source=message,
            text=text,
            payload=MappingProxyType(payload),
            flags=frozenset(flags),
        )

    def _mentions(self, inner: Mapping[str, Any], flags: Set[str]) -> Tuple[str, ...]:
        seen: List[str] = []
        dropped = False
        for mentions in iter_mention_lists(inner):
            for jid in mentions:
                if not isinstance(jid, str) or not _JID_RE.fullmatch(jid):
                    dropped = True
                    continue
                if jid not in seen:
                    seen.append(jid)
        if len(seen) > self.config.max_mentions:
            seen = seen[: self.config.max_mentions]
            dropped = True
        if dropped:
            flags.add(FLAG_MENTIONS_DROPPED)
        return tuple(seen)

    @staticmethod
    def _quoted_id(node: Any) -> str | None:
        if not isinstance(node, Mapping):
            return None
        context = node.get("contextInfo")
        if isinstance(context, Mapping):
            stanza = context.get("stanzaId")
            if isinstance(stanza, str) and len(stanza) <= 128:
                return stanza
        return None
