"""
Storage Services Package

Provides the ledger storage interface and its implementations:
in-memory (tests), local JSON (offline) and Google Sheets (cloud).
Which one is used is a configuration choice.
"""

from finanzas.services.storage.interface import (
    RECORD_COLLECTIONS,
    AuditStorageInterface,
    Collection,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    sort_records,
)
from finanzas.services.storage.subscriptions import SnapshotChannel, Subscription
from finanzas.services.storage.memory import InMemoryAuditStorage, InMemoryLedgerStorage
from finanzas.services.storage.local_json import LocalJsonLedgerStorage
from finanzas.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "Collection",
    "RECORD_COLLECTIONS",
    "sort_records",
    # Subscriptions
    "SnapshotChannel",
    "Subscription",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LocalJsonLedgerStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
