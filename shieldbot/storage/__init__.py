"""
Durable stores for shieldbot.

Public API:
    - CredentialBundle / CredentialStore: authentication state across restarts
    - ContactLedgerEntry / ContactLedger: conversations already greeted
"""

from .credentials import CredentialBundle, CredentialStore
from .ledger import ContactLedger, ContactLedgerEntry, serialize_entries

__all__ = [
    "CredentialBundle",
    "CredentialStore",
    "ContactLedger",
    "ContactLedgerEntry",
    "serialize_entries",
]
