"""Helpers for walking message content nodes.

Message bodies are nested mappings whose first key names the content type
(``conversation``, ``extendedTextMessage``, ``imageMessage`` ...). Wrapper
types (view-once, ephemeral, document-with-caption) nest another body under
``message``.
"""

from __future__ import annotations

import re
from typing import Any, Iterator, List, Mapping, Tuple


WRAPPER_TYPES = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "documentWithCaptionMessage",
    "editedMessage",
)

CONTROL_TYPES = frozenset({
    "protocolMessage",
    "senderKeyDistributionMessage",
    "messageContextInfo",
})

TEXT_KEYS = (
    "conversation",
    "text",
    "caption",
    "title",
    "description",
    "displayName",
    "name",
    "contentText",
    "footerText",
    "selectedDisplayText",
)

# Zero-width, bidi control and other format characters used by crasher payloads.
INVISIBLE_RE = re.compile(
    "[\u200b-\u200f\u202a-\u202e\u2060-\u2064\u2066-\u206f\ufeff\u180e\u00ad]"
)
# C0/C1 control characters except tab, newline and carriage return.
CONTROL_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
# Combining marks (diacritics stacked to build "zalgo" text).
COMBINING_CLASS = "\u0300-\u036f\u1ab0-\u1aff\u1dc0-\u1dff\u20d0-\u20ff\ufe20-\ufe2f"
COMBINING_RE = re.compile(f"[{COMBINING_CLASS}]")


def combining_run_re(limit: int) -> re.Pattern[str]:
    """Match runs longer than *limit* marks; group 1 holds the first *limit*."""
    return re.compile(f"([{COMBINING_CLASS}]{{{limit}}})[{COMBINING_CLASS}]+")


def content_types(body: Mapping[str, Any]) -> List[str]:
    """Keys of the body that carry content (control entries excluded)."""
    return [k for k in body if k not in CONTROL_TYPES]


def unwrap(body: Mapping[str, Any], limit: int = 8) -> Mapping[str, Any]:
    """Strip wrapper layers and return the innermost body."""
    node = body
    for _ in range(limit):
        for wrapper in WRAPPER_TYPES:
            inner = node.get(wrapper)
            if isinstance(inner, Mapping) and isinstance(inner.get("message"), Mapping):
                node = inner["message"]
                break
        else:
            return node
    return node


def exceeds_depth(node: Any, limit: int) -> bool:
    """Return True if a container sits more than *limit* levels below the root."""
    stack: List[Tuple[Any, int]] = [(node, 0)]
    while stack:
        current, depth = stack.pop()
        if isinstance(current, Mapping):
            children = list(current.values())
        elif isinstance(current, (list, tuple)):
            children = list(current)
        else:
            continue
        if depth > limit:
            return True
        stack.extend((c, depth + 1) for c in children)
    return False


def iter_text_fields(node: Any, path: str = "", limit: int = 16) -> Iterator[Tuple[str, str]]:
    """Yield ``(path, value)`` for every known text field in the node."""
    if limit < 0:
        return
    if isinstance(node, Mapping):
        for key, value in node.items():
            child_path = f"{path}.{key}" if path else str(key)
            if isinstance(value, str) and key in TEXT_KEYS:
                yield child_path, value
            elif isinstance(value, (Mapping, list, tuple)):
                yield from iter_text_fields(value, child_path, limit - 1)
    elif isinstance(node, (list, tuple)):
        for i, value in enumerate(node):
            yield from iter_text_fields(value, f"{path}[{i}]", limit - 1)


def iter_mention_lists(node: Any, limit: int = 16) -> Iterator[list]:
    """Yield every ``mentionedJid`` list found in the node."""
    if limit < 0:
        return
    if isinstance(node, Mapping):
        for key, value in node.items():
            if key == "mentionedJid" and isinstance(value, list):
                yield value
            elif isinstance(value, (Mapping, list, tuple)):
                yield from iter_mention_lists(value, limit - 1)
    elif isinstance(node, (list, tuple)):
        for value in node:
            yield from iter_mention_lists(value, limit - 1)


def primary_text(body: Mapping[str, Any]) -> str:
    """The user-visible text of a body ("" when it has none)."""
    inner = unwrap(body)
    conversation = inner.get("conversation")
    if isinstance(conversation, str):
        return conversation
    for key in content_types(inner):
        node = inner.get(key)
        if not isinstance(node, Mapping):
            continue
        for field_name in ("text", "caption", "contentText", "selectedDisplayText"):
            value = node.get(field_name)
            if isinstance(value, str):
                return value
    return ""
