"""Structural validation layer (Shield).

The Shield is the first stage of the inbound pipeline. It inspects the raw
message envelope and produces a single ALLOW/BLOCK verdict. It never
transforms content. Blocked messages are dropped without any reply so an
attacker gets no feedback about which payloads are filtered.

Checks, in order:
    missing body, malformed conversation id, own messages, control-only
    envelopes, nesting depth, oversized text, oversized mention lists,
    invisible-character floods and stacked combining marks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from shieldbot.errors import MalformedMessageError
from shieldbot.protocol.base import InboundMessage
from shieldbot.security.content import (
    COMBINING_RE,
    CONTROL_TYPES,
    INVISIBLE_RE,
    content_types,
    exceeds_depth,
    iter_mention_lists,
    iter_text_fields,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------

class ShieldDecision(str, Enum):
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


@dataclass(frozen=True)
class ShieldVerdict:
    """Immutable result of a Shield check."""

    decision: ShieldDecision
    reason: str

    @property
    def blocked(self) -> bool:
        return self.decision == ShieldDecision.BLOCK


_ALLOW = ShieldVerdict(ShieldDecision.ALLOW, "All shield checks passed.")


# ---------------------------------------------------------------------------
# ShieldConfig
# ---------------------------------------------------------------------------

@dataclass
class ShieldConfig:
    """Shield limits.

    Expected keys in the source dict:
        max_text_length (int)        -- longest accepted text field
        max_depth (int)              -- deepest accepted envelope nesting
        max_mentions (int)           -- longest accepted mention list
        max_invisible_ratio (float)  -- share of invisible chars tolerated
        max_combining_run (int)      -- longest run of stacked diacritics
        drop_own_messages (bool)     -- block messages sent by this account
    """

    max_text_length: int = 20000
    max_depth: int = 10
    max_mentions: int = 256
    max_invisible_ratio: float = 0.5
    max_combining_run: int = 32
    drop_own_messages: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ShieldConfig:
        """Build a ShieldConfig from a plain dict."""
        return cls(
            max_text_length=int(data.get("max_text_length", 20000)),
            max_depth=int(data.get("max_depth", 10)),
            max_mentions=int(data.get("max_mentions", 256)),
            max_invisible_ratio=float(data.get("max_invisible_ratio", 0.5)),
            max_combining_run=int(data.get("max_combining_run", 32)),
            drop_own_messages=bool(data.get("drop_own_messages", True)),
        )

    @classmethod
    def from_settings(cls, settings: Any) -> ShieldConfig:
        return cls(
            max_text_length=settings.SHIELD_MAX_TEXT_LENGTH,
            max_depth=settings.SHIELD_MAX_DEPTH,
            max_mentions=settings.SHIELD_MAX_MENTIONS,
        )


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

_REMOTE_ID_RE = re.compile(r"[\w.+:-]{1,128}@[\w.-]{1,64}")
# Invisible-character floods only matter on text long enough to hang a renderer.
_MIN_FLOOD_LENGTH = 64

Check = Callable[[InboundMessage, ShieldConfig], Optional[str]]


def _check_body(message: InboundMessage, config: ShieldConfig) -> Optional[str]:
    body = message.body
    if not isinstance(body, Mapping) or not body:
        return "missing message body"
    return None


def _check_remote_id(message: InboundMessage, config: ShieldConfig) -> Optional[str]:
    if not _REMOTE_ID_RE.fullmatch(message.remote_id):
        return "malformed conversation identifier"
    return None


def _check_own(message: InboundMessage, config: ShieldConfig) -> Optional[str]:
    if config.drop_own_messages and message.from_me:
        return "message sent by this account"
    return None


def _check_control_only(message: InboundMessage, config: ShieldConfig) -> Optional[str]:
    if not content_types(message.body):
        kinds = ", ".join(sorted(k for k in message.body if k in CONTROL_TYPES))
        return f"control-only envelope ({kinds})"
    return None


def _check_depth(message: InboundMessage, config: ShieldConfig) -> Optional[str]:
    if exceeds_depth(message.body, config.max_depth):
        return f"envelope nested deeper than {config.max_depth}"
    return None


def _check_text(message: InboundMessage, config: ShieldConfig) -> Optional[str]:
    for path, value in iter_text_fields(message.body):
        if len(value) > config.max_text_length:
            return f"oversized text in {path} ({len(value)} chars)"

        if len(value) >= _MIN_FLOOD_LENGTH:
            invisible = len(INVISIBLE_RE.findall(value)) + len(COMBINING_RE.findall(value))
            if invisible / len(value) > config.max_invisible_ratio:
                return f"invisible-character flood in {path}"

        longest = _longest_combining_run(value)
        if longest > config.max_combining_run:
            return f"stacked combining marks in {path} ({longest})"
    return None


def _check_mentions(message: InboundMessage, config: ShieldConfig) -> Optional[str]:
    for mentions in iter_mention_lists(message.body):
        if len(mentions) > config.max_mentions:
            return f"oversized mention list ({len(mentions)})"
    return None


def _longest_combining_run(text: str) -> int:
    longest = run = 0
    for ch in text:
        if COMBINING_RE.match(ch):
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return longest


_CHECKS: List[Check] = [
    _check_body,
    _check_remote_id,
    _check_own,
    _check_control_only,
    _check_depth,
    _check_text,
    _check_mentions,
]


# ---------------------------------------------------------------------------
# Shield (compositor)
# ---------------------------------------------------------------------------

class Shield:
    """Top-level structural validator.

    Runs every check in order and returns the first BLOCK. An exception
    raised by a check is itself a BLOCK (fail-closed).
    """

    def __init__(self, config: ShieldConfig | None = None) -> None:
        self.config = config or ShieldConfig()
        self._checks: List[Check] = list(_CHECKS)

    def add_check(self, check: Check) -> None:
        """Register an extra blocklist check, run after the built-in ones."""
        self._checks.append(check)

    def validate(self, message: InboundMessage) -> None:
        """Raise if the message must be blocked.

        Raises:
            MalformedMessageError: With the block reason.
        """
        for check in self._checks:
            reason = check(message, self.config)
            if reason is not None:
                raise MalformedMessageError(reason)

    def inspect(self, message: InboundMessage) -> ShieldVerdict:
        """Run all checks and return a single verdict."""
        try:
            self.validate(message)
        except MalformedMessageError as e:
            return ShieldVerdict(ShieldDecision.BLOCK, str(e))
        except Exception as e:
            logger.exception(f"Shield check crashed on message {message.id}")
            return ShieldVerdict(ShieldDecision.BLOCK, f"shield error: {type(e).__name__}")
        return _ALLOW
