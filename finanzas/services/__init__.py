"""Services package."""

from finanzas.services.storage import (
    AuditStorageInterface,
    Collection,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    LocalJsonLedgerStorage,
    NotFoundError,
    StorageError,
    Subscription,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "Collection",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "LocalJsonLedgerStorage",
    "NotFoundError",
    "StorageError",
    "Subscription",
]
