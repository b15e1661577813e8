"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run fully offline (local JSON file) or against a cloud store
2. Use in-memory storage for testing
3. Keep the ledger logic decoupled from storage implementation

One storage object serves ONE user. Each user owns a profile document
(profile fields, categories, paid months) and four record collections:
transactions, cards, wishlist and acquisitions.

The interface is intentionally simple - we're not building a full ORM.
Just the operations the app needs.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional

from finanzas.models.audit import AuditEvent
from finanzas.models.ledger import (
    Acquisition,
    Card,
    Transaction,
    UserProfile,
    WishlistItem,
)
from finanzas.services.storage.subscriptions import Subscription


class Collection(str, Enum):
    """Everything a subscriber can listen to."""
    PROFILE = "profile"
    TRANSACTIONS = "transactions"
    CARDS = "cards"
    WISHLIST = "wishlist"
    ACQUISITIONS = "acquisitions"


RECORD_COLLECTIONS = (
    Collection.TRANSACTIONS,
    Collection.CARDS,
    Collection.WISHLIST,
    Collection.ACQUISITIONS,
)


def sort_records(collection: Collection, records: list) -> list:
    """Newest / biggest first, the order every backend lists records in."""
    if collection == Collection.TRANSACTIONS:
        return sorted(records, key=lambda t: (t.date, t.created_at), reverse=True)
    if collection == Collection.ACQUISITIONS:
        return sorted(records, key=lambda a: a.date, reverse=True)
    if collection == Collection.CARDS:
        return sorted(records, key=lambda c: c.name, reverse=True)
    if collection == Collection.WISHLIST:
        return sorted(records, key=lambda w: w.price, reverse=True)
    return list(records)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for one user's ledger storage.

    Any storage implementation (local file, Google Sheets, etc.)
    must implement these methods.
    """

    @property
    @abstractmethod
    def user_id(self) -> str:
        """Owner of the stored data."""

    # -- profile --------------------------------------------------------------

    @abstractmethod
    async def get_profile(self) -> Optional[UserProfile]:
        """
        Load the profile document.

        Returns:
            The profile, or None for a user who was never initialized
        """

    @abstractmethod
    async def save_profile(self, profile: UserProfile) -> UserProfile:
        """Create or replace the profile document."""

    async def update_profile(self, **fields: Any) -> UserProfile:
        """
        Update selected profile fields.

        Raises:
            NotFoundError: If the profile doesn't exist
            ValueError: If the new values do not make a valid profile
            StorageError: If the write fails
        """
        profile = await self.get_profile()
        if profile is None:
            raise NotFoundError(f"No profile for user {self.user_id}")
        updated = UserProfile.model_validate({**profile.model_dump(), **fields})
        return await self.save_profile(updated)

    # -- transactions ---------------------------------------------------------

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> Transaction:
        """Store a new transaction."""

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """All transactions, newest first."""

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in await self.list_transactions():
            if transaction.id == transaction_id:
                return transaction
        return None

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace an existing transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> bool:
        """Returns True if a transaction was deleted."""

    # -- cards ----------------------------------------------------------------

    @abstractmethod
    async def add_card(self, card: Card) -> Card:
        """Store a new card."""

    @abstractmethod
    async def list_cards(self) -> list[Card]:
        """All cards."""

    @abstractmethod
    async def delete_card(self, card_id: str) -> bool:
        """Returns True if a card was deleted."""

    # -- wishlist -------------------------------------------------------------

    @abstractmethod
    async def add_wishlist_item(self, item: WishlistItem) -> WishlistItem:
        """Store a new wishlist item."""

    @abstractmethod
    async def list_wishlist(self) -> list[WishlistItem]:
        """All wishlist items, most expensive first."""

    @abstractmethod
    async def delete_wishlist_item(self, item_id: str) -> bool:
        """Returns True if an item was deleted."""

    # -- acquisitions ---------------------------------------------------------

    @abstractmethod
    async def add_acquisition(self, acquisition: Acquisition) -> Acquisition:
        """Store a new acquisition."""

    @abstractmethod
    async def list_acquisitions(self) -> list[Acquisition]:
        """All acquisitions, newest first."""

    @abstractmethod
    async def delete_acquisition(self, acquisition_id: str) -> bool:
        """Returns True if an acquisition was deleted."""

    # -- lifecycle ------------------------------------------------------------

    @abstractmethod
    async def reset_all(self) -> None:
        """Delete the profile and every record of this user."""

    @abstractmethod
    def subscribe(
        self,
        collection: Collection,
        callback: Optional[Callable[[Any], None]] = None,
    ) -> Subscription:
        """
        Listen to full snapshots of a collection.

        The profile collection delivers ``Optional[UserProfile]``; the
        record collections deliver lists in listing order.

        Returns:
            Handle whose ``cancel()`` ends the subscription
        """


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
