"""
In-Memory Storage Implementation

Keeps one user's ledger in plain dicts. Used directly in tests and as
the base of the local JSON backend, which only adds loading and saving.

Every successful write publishes a fresh snapshot of the collection it
touched.
"""

from typing import Any, Callable, Optional

from finanzas.models.audit import AuditEvent
from finanzas.models.ledger import (
    Acquisition,
    Card,
    Transaction,
    UserProfile,
    WishlistItem,
)
from finanzas.services.storage.interface import (
    RECORD_COLLECTIONS,
    AuditStorageInterface,
    Collection,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    sort_records,
)
from finanzas.services.storage.subscriptions import SnapshotChannel, Subscription


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage for a single user."""

    def __init__(self, user_id: str = "local"):
        self._user_id = user_id
        self._profile: Optional[UserProfile] = None
        self._records: dict[Collection, dict[str, Any]] = {
            collection: {} for collection in RECORD_COLLECTIONS
        }
        self._channels: dict[Collection, SnapshotChannel] = {
            collection: SnapshotChannel(collection.value) for collection in Collection
        }

    @property
    def user_id(self) -> str:
        return self._user_id

    def _persist(self) -> None:
        """Hook for subclasses that keep the data somewhere durable."""

    def _snapshot(self, collection: Collection):
        if collection == Collection.PROFILE:
            return self._profile
        return sort_records(collection, list(self._records[collection].values()))

    def _checkpoint(self) -> tuple:
        return self._profile, {c: dict(records) for c, records in self._records.items()}

    def _changed(self, checkpoint: tuple, *collections: Collection) -> None:
        """Persist and publish; a failed persist restores ``checkpoint``."""
        try:
            self._persist()
        except StorageError:
            self._profile, self._records = checkpoint
            raise
        for collection in collections:
            self._channels[collection].publish(self._snapshot(collection))

    def _add(self, collection: Collection, record):
        checkpoint = self._checkpoint()
        self._records[collection][record.id] = record
        self._changed(checkpoint, collection)
        return record

    def _delete(self, collection: Collection, record_id: str) -> bool:
        if record_id not in self._records[collection]:
            return False
        checkpoint = self._checkpoint()
        del self._records[collection][record_id]
        self._changed(checkpoint, collection)
        return True

    # -- profile --------------------------------------------------------------

    async def get_profile(self) -> Optional[UserProfile]:
        return self._profile

    async def save_profile(self, profile: UserProfile) -> UserProfile:
        checkpoint = self._checkpoint()
        self._profile = profile
        self._changed(checkpoint, Collection.PROFILE)
        return profile

    # -- transactions ---------------------------------------------------------

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        return self._add(Collection.TRANSACTIONS, transaction)

    async def list_transactions(self) -> list[Transaction]:
        return self._snapshot(Collection.TRANSACTIONS)

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id not in self._records[Collection.TRANSACTIONS]:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        return self._add(Collection.TRANSACTIONS, transaction)

    async def delete_transaction(self, transaction_id: str) -> bool:
        return self._delete(Collection.TRANSACTIONS, transaction_id)

    # -- cards ----------------------------------------------------------------

    async def add_card(self, card: Card) -> Card:
        return self._add(Collection.CARDS, card)

    async def list_cards(self) -> list[Card]:
        return self._snapshot(Collection.CARDS)

    async def delete_card(self, card_id: str) -> bool:
        return self._delete(Collection.CARDS, card_id)

    # -- wishlist -------------------------------------------------------------

    async def add_wishlist_item(self, item: WishlistItem) -> WishlistItem:
        return self._add(Collection.WISHLIST, item)

    async def list_wishlist(self) -> list[WishlistItem]:
        return self._snapshot(Collection.WISHLIST)

    async def delete_wishlist_item(self, item_id: str) -> bool:
        return self._delete(Collection.WISHLIST, item_id)

    # -- acquisitions ---------------------------------------------------------

    async def add_acquisition(self, acquisition: Acquisition) -> Acquisition:
        return self._add(Collection.ACQUISITIONS, acquisition)

    async def list_acquisitions(self) -> list[Acquisition]:
        return self._snapshot(Collection.ACQUISITIONS)

    async def delete_acquisition(self, acquisition_id: str) -> bool:
        return self._delete(Collection.ACQUISITIONS, acquisition_id)

    # -- lifecycle ------------------------------------------------------------

    async def reset_all(self) -> None:
        checkpoint = self._checkpoint()
        self._profile = None
        for records in self._records.values():
            records.clear()
        self._changed(checkpoint, *Collection)

    def subscribe(
        self,
        collection: Collection,
        callback: Optional[Callable[[Any], None]] = None,
    ) -> Subscription:
        channel = self._channels[Collection(collection)]
        if not channel.subscriber_count:
            # first listener: make sure it starts from the current state
            channel.publish(self._snapshot(Collection(collection)))
        return channel.subscribe(callback)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit list kept in memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
