"""
Contact Ledger for shieldbot.

A durable, append-only record of conversations that already received the
first-contact invitation. Stored as a JSON object mapping conversation id
to the first-seen time in epoch milliseconds.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from pydantic import TypeAdapter, ValidationError

from shieldbot.errors import PersistenceError

logger = logging.getLogger(__name__)

_LEDGER_SCHEMA = TypeAdapter(dict[str, int])


@dataclass(frozen=True)
class ContactLedgerEntry:
    """A conversation first seen at ``first_seen_at`` (epoch ms)."""

    remote_id: str
    first_seen_at: int


def serialize_entries(entries: dict[str, int]) -> str:
    """Deterministic on-disk representation of the ledger."""
    return json.dumps(entries, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


class ContactLedger:
    """
    File-backed set of previously greeted conversation identifiers.

    Entries are never updated or removed. ``record_if_new`` is an atomic
    upsert: membership check, insert and persist happen under one lock, so
    concurrent deliveries for the same conversation record it once.

    Example:
        ledger = ContactLedger("./.seen_jids.json")
        if await ledger.record_if_new("24177000000@s.whatsapp.net"):
            ...  # first contact, entry is durable
    """

    def __init__(self, path: str | Path, clock: Callable[[], int] | None = None):
        self._path = Path(path)
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._entries: dict[str, int] | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, int]:
        """Read the ledger from disk.

        Missing, unreadable or corrupt files yield an empty ledger.
        """
        if not self._path.exists():
            self._entries = {}
            return {}

        try:
            raw = self._path.read_bytes()
            entries = _LEDGER_SCHEMA.validate_json(raw)
        except (OSError, ValidationError) as e:
            logger.warning(f"Corrupt ledger at {self._path}, starting empty: {e}")
            entries = {}

        self._entries = dict(entries)
        return dict(entries)

    def save(self, entries: dict[str, int]) -> None:
        """Overwrite the ledger file before returning.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(serialize_entries(entries), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as e:
            raise PersistenceError(str(self._path), str(e)) from e
        self._entries = dict(entries)

    def _current(self) -> dict[str, int]:
        if self._entries is None:
            self.load()
        return self._entries

    def contains(self, remote_id: str) -> bool:
        return remote_id in self._current()

    async def record_if_new(self, remote_id: str) -> bool:
        """Record a conversation if unseen and persist the ledger.

        Returns:
            True if the entry was added and durably written, False if the
            conversation was already present.

        Raises:
            PersistenceError: If the write failed; the entry is not kept.
        """
        async with self._lock:
            current = self._current()
            if remote_id in current:
                return False

            updated = {**current, remote_id: self._clock()}
            await asyncio.to_thread(self.save, updated)
            logger.debug(f"Ledger recorded {remote_id}")
            return True

    def entries(self) -> Iterator[ContactLedgerEntry]:
        for remote_id, first_seen in sorted(self._current().items()):
            yield ContactLedgerEntry(remote_id=remote_id, first_seen_at=first_seen)

    def __len__(self) -> int:
        return len(self._current())

    def __contains__(self, remote_id: object) -> bool:
        return isinstance(remote_id, str) and self.contains(remote_id)

    def __repr__(self) -> str:
        return f"<ContactLedger path={self._path} entries={len(self._entries or {})}>"
