"""
Credential Store Adapter for shieldbot.

Persists the opaque authentication state produced by the protocol client
so a session can resume without re-pairing after a restart. The blob is
owned by the protocol client; this module only stores it and tracks the
``registered`` flag that gates the pairing flow.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from shieldbot.errors import PersistenceError

logger = logging.getLogger(__name__)

CREDS_FILENAME = "creds.json"


@dataclass
class CredentialBundle:
    """
    Opaque authentication material plus its registration flag.

    Once ``registered`` is True the pairing-code flow must never run again
    for this bundle.

    Attributes:
        data: Protocol-owned credential fields (JSON-serializable).
        registered: Whether this device is linked to an account.
    """

    data: dict[str, Any] = field(default_factory=dict)
    registered: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert the bundle to a dictionary for serialization."""
        return {"registered": self.registered, "creds": self.data}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CredentialBundle":
        """Create a bundle from a dictionary.

        Raises:
            ValueError: If the mapping does not have the expected shape.
        """
        creds = data.get("creds", {})
        if not isinstance(creds, dict):
            raise ValueError("creds must be a mapping")
        registered = data.get("registered", creds.get("registered", False))
        if not isinstance(registered, bool):
            raise ValueError("registered must be a boolean")
        return cls(data=dict(creds), registered=registered)


class CredentialStore:
    """
    File-backed store for a single CredentialBundle.

    Layout: ``<directory>/creds.json``. Writes are atomic (temp file then
    rename) and synchronous. Missing or corrupt files load as an empty,
    unregistered bundle.

    Thread Safety:
        Single writer expected; the session controller is the only caller
        of ``save``.
    """

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)

    @property
    def path(self) -> Path:
        return self._directory / CREDS_FILENAME

    def load(self) -> CredentialBundle:
        """Return the last persisted bundle, or an empty one."""
        path = self.path
        if not path.exists():
            logger.info(f"No stored credentials at {path}; starting unregistered")
            return CredentialBundle()

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("top-level value is not an object")
            return CredentialBundle.from_dict(raw)
        except (OSError, ValueError) as e:
            logger.warning(f"Corrupt credential store at {path}, ignoring it: {e}")
            return CredentialBundle()

    def save(self, bundle: CredentialBundle) -> None:
        """Overwrite the persisted bundle before returning.

        Raises:
            PersistenceError: If the bundle cannot be written.
        """
        path = self.path
        tmp = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps(bundle.to_dict(), indent=2, sort_keys=True, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
            tmp.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(str(path), str(e)) from e
        logger.debug(f"Saved credentials to {path}")

    def clear(self) -> None:
        """Remove persisted credentials so the next start pairs again.

        Raises:
            PersistenceError: If the file exists but cannot be removed.
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(str(self.path), str(e)) from e
        logger.info(f"Cleared credentials at {self.path}")

    @staticmethod
    def apply_update(bundle: CredentialBundle, changes: Mapping[str, Any]) -> CredentialBundle:
        """Merge a credential-change event into a new bundle.

        The ``registered`` flag follows the change when present and never
        goes back from True to False through an update.
        """
        data = {**bundle.data, **dict(changes)}
        registered = bundle.registered or bool(changes.get("registered", False))
        return CredentialBundle(data=data, registered=registered)

    def __repr__(self) -> str:
        return f"<CredentialStore path={self.path}>"
