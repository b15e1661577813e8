"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the cloud storage backend because:
1. Users can view their own ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

LAYOUT: One worksheet per collection plus a profile worksheet. Every row
starts with the owning ``user_id``; a storage object only ever reads and
writes the rows of its own user.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)
- No push notifications: snapshots are published after our own writes,
  and ``refresh()`` republishes everything after outside edits
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finanzas.config import GoogleSheetsSettings, get_settings
from finanzas.ledger.aggregator import link_card_references
from finanzas.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finanzas.models.ledger import (
    Acquisition,
    Card,
    Categories,
    Transaction,
    TransactionType,
    UserProfile,
    WishlistItem,
)
from finanzas.services.storage.interface import (
    AuditStorageInterface,
    Collection,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    sort_records,
)
from finanzas.services.storage.subscriptions import SnapshotChannel, Subscription


logger = structlog.get_logger(__name__)


sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(NotFoundError),
    reraise=True,
)


PROFILE_COLUMNS = [
    "user_id",
    "name",
    "phone",
    "email",
    "country_code",
    "categories_json",
    "paid_months_json",
    "updated_at",
]

TRANSACTION_COLUMNS = [
    "user_id",
    "id",
    "type",
    "category",
    "description",
    "amount",
    "date",
    "card_id",
    "installments",
    "first_payment_date",
    "created_at",
]

CARD_COLUMNS = ["user_id", "id", "name", "limit"]

WISHLIST_COLUMNS = ["user_id", "id", "name", "link", "price"]

ACQUISITION_COLUMNS = [
    "user_id",
    "id",
    "name",
    "link",
    "price",
    "date",
    "wishlist_item_id",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _row_getter(row: list) -> Callable[[int], str]:
    """Cell accessor that tolerates short rows."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
            logger.info("worksheet_created", title=title)
        return sheet


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Records are stored one per row. Categories and paid months are
    JSON-serialized into the profile row.
    """

    def __init__(self, user_id: str, client: Optional[GoogleSheetsClient] = None):
        self._user_id = user_id
        self._client = client or GoogleSheetsClient()
        self._channels: dict[Collection, SnapshotChannel] = {
            collection: SnapshotChannel(collection.value) for collection in Collection
        }

    @property
    def user_id(self) -> str:
        return self._user_id

    # -- sheet access ---------------------------------------------------------

    def _sheet(self, collection: Collection) -> gspread.Worksheet:
        settings = self._client.settings
        title, columns = {
            Collection.PROFILE: (settings.profiles_sheet_name, PROFILE_COLUMNS),
            Collection.TRANSACTIONS: (settings.transactions_sheet_name, TRANSACTION_COLUMNS),
            Collection.CARDS: (settings.cards_sheet_name, CARD_COLUMNS),
            Collection.WISHLIST: (settings.wishlist_sheet_name, WISHLIST_COLUMNS),
            Collection.ACQUISITIONS: (settings.acquisitions_sheet_name, ACQUISITION_COLUMNS),
        }[collection]
        return self._client.worksheet(title, columns)

    def _user_rows(self, collection: Collection) -> list[tuple[int, list]]:
        """(sheet row number, row) pairs owned by this user. Row 1 is the header."""
        all_rows = self._sheet(collection).get_all_values()
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)
            if row and row[0] == self._user_id
        ]

    def _find_row(self, collection: Collection, record_id: str) -> Optional[int]:
        for idx, row in self._user_rows(collection):
            if len(row) > 1 and row[1] == record_id:
                return idx
        return None

    def _read(self, collection: Collection):
        """Parse this user's rows of a collection, skipping malformed ones."""
        if collection == Collection.PROFILE:
            rows = self._user_rows(collection)
            return self._row_to_profile(rows[0][1]) if rows else None

        parse = {
            Collection.TRANSACTIONS: self._row_to_transaction,
            Collection.CARDS: self._row_to_card,
            Collection.WISHLIST: self._row_to_wishlist_item,
            Collection.ACQUISITIONS: self._row_to_acquisition,
        }[collection]

        records = []
        for idx, row in self._user_rows(collection):
            try:
                records.append(parse(row))
            except (KeyError, ValueError, ArithmeticError) as e:
                logger.warning(
                    "malformed_row_skipped",
                    collection=collection.value,
                    row=idx,
                    error=str(e),
                )

        if collection == Collection.TRANSACTIONS:
            records = link_card_references(records, self._read(Collection.CARDS))
        return sort_records(collection, records)

    def _publish(self, collection: Collection) -> None:
        self._channels[collection].publish(self._read(collection))

    @sheets_retry
    def _append(self, collection: Collection, row: list) -> None:
        try:
            self._sheet(collection).append_row(row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to write {collection.value}: {e}")

    @sheets_retry
    def _delete_row(self, collection: Collection, record_id: str) -> bool:
        try:
            idx = self._find_row(collection, record_id)
            if idx is None:
                return False
            self._sheet(collection).delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete from {collection.value}: {e}")

    # -- row conversion -------------------------------------------------------

    def _profile_to_row(self, profile: UserProfile) -> list:
        return [
            self._user_id,
            profile.name,
            profile.phone,
            profile.email,
            profile.country_code,
            json.dumps(profile.categories.model_dump(), ensure_ascii=False),
            json.dumps(profile.paid_months),
            datetime.utcnow().isoformat(),
        ]

    @staticmethod
    def _row_to_profile(row: list) -> UserProfile:
        safe_get = _row_getter(row)
        data: dict[str, Any] = {
            "name": safe_get(1, "Usuario"),
            "phone": safe_get(2),
            "email": safe_get(3),
            "country_code": safe_get(4, "+56"),
            "paid_months": json.loads(safe_get(6, "{}")),
        }
        if safe_get(5):
            data["categories"] = Categories.model_validate(json.loads(safe_get(5)))
        return UserProfile.model_validate(data)

    def _transaction_to_row(self, transaction: Transaction) -> list:
        return [
            self._user_id,
            transaction.id,
            transaction.type.value,
            transaction.category,
            transaction.description,
            str(transaction.amount),
            transaction.date.isoformat(),
            transaction.card_id or "",
            str(transaction.installments) if transaction.installments else "",
            transaction.first_payment_date.isoformat() if transaction.first_payment_date else "",
            transaction.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_transaction(row: list) -> Transaction:
        safe_get = _row_getter(row)
        return Transaction(
            id=safe_get(1),
            type=TransactionType(safe_get(2)),
            category=safe_get(3),
            description=safe_get(4),
            amount=Decimal(safe_get(5)),
            date=date.fromisoformat(safe_get(6)),
            card_id=safe_get(7) or None,
            installments=int(safe_get(8)) if safe_get(8) else None,
            first_payment_date=date.fromisoformat(safe_get(9)) if safe_get(9) else None,
            created_at=datetime.fromisoformat(safe_get(10)) if safe_get(10) else datetime.utcnow(),
        )

    def _card_to_row(self, card: Card) -> list:
        return [self._user_id, card.id, card.name, str(card.limit)]

    @staticmethod
    def _row_to_card(row: list) -> Card:
        safe_get = _row_getter(row)
        return Card(id=safe_get(1), name=safe_get(2), limit=Decimal(safe_get(3, "0")))

    def _wishlist_item_to_row(self, item: WishlistItem) -> list:
        return [self._user_id, item.id, item.name, item.link, str(item.price)]

    @staticmethod
    def _row_to_wishlist_item(row: list) -> WishlistItem:
        safe_get = _row_getter(row)
        return WishlistItem(
            id=safe_get(1),
            name=safe_get(2),
            link=safe_get(3),
            price=Decimal(safe_get(4, "0")),
        )

    def _acquisition_to_row(self, acquisition: Acquisition) -> list:
        return [
            self._user_id,
            acquisition.id,
            acquisition.name,
            acquisition.link,
            str(acquisition.price),
            acquisition.date.isoformat(),
            acquisition.wishlist_item_id or "",
        ]

    @staticmethod
    def _row_to_acquisition(row: list) -> Acquisition:
        safe_get = _row_getter(row)
        return Acquisition(
            id=safe_get(1),
            name=safe_get(2),
            link=safe_get(3),
            price=Decimal(safe_get(4, "0")),
            date=date.fromisoformat(safe_get(5)),
            wishlist_item_id=safe_get(6) or None,
        )

    # -- profile --------------------------------------------------------------

    async def get_profile(self) -> Optional[UserProfile]:
        try:
            return self._read(Collection.PROFILE)
        except Exception as e:
            raise StorageError(f"Failed to get profile: {e}")

    @sheets_retry
    async def save_profile(self, profile: UserProfile) -> UserProfile:
        try:
            sheet = self._sheet(Collection.PROFILE)
            row = self._profile_to_row(profile)
            existing = self._user_rows(Collection.PROFILE)
            if existing:
                idx = existing[0][0]
                sheet.update(values=[row], range_name=f"A{idx}")
            else:
                sheet.append_row(row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save profile: {e}")
        self._channels[Collection.PROFILE].publish(profile)
        return profile

    # -- transactions ---------------------------------------------------------

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        self._append(Collection.TRANSACTIONS, self._transaction_to_row(transaction))
        self._publish(Collection.TRANSACTIONS)
        return transaction

    async def list_transactions(self) -> list[Transaction]:
        try:
            return self._read(Collection.TRANSACTIONS)
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

    @sheets_retry
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        try:
            idx = self._find_row(Collection.TRANSACTIONS, transaction.id)
            if idx is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            self._sheet(Collection.TRANSACTIONS).update(
                values=[self._transaction_to_row(transaction)],
                range_name=f"A{idx}",
            )
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")
        self._publish(Collection.TRANSACTIONS)
        return transaction

    async def delete_transaction(self, transaction_id: str) -> bool:
        deleted = self._delete_row(Collection.TRANSACTIONS, transaction_id)
        if deleted:
            self._publish(Collection.TRANSACTIONS)
        return deleted

    # -- cards ----------------------------------------------------------------

    async def add_card(self, card: Card) -> Card:
        self._append(Collection.CARDS, self._card_to_row(card))
        self._publish(Collection.CARDS)
        return card

    async def list_cards(self) -> list[Card]:
        try:
            return self._read(Collection.CARDS)
        except Exception as e:
            raise StorageError(f"Failed to list cards: {e}")

    async def delete_card(self, card_id: str) -> bool:
        deleted = self._delete_row(Collection.CARDS, card_id)
        if deleted:
            self._publish(Collection.CARDS)
        return deleted

    # -- wishlist -------------------------------------------------------------

    async def add_wishlist_item(self, item: WishlistItem) -> WishlistItem:
        self._append(Collection.WISHLIST, self._wishlist_item_to_row(item))
        self._publish(Collection.WISHLIST)
        return item

    async def list_wishlist(self) -> list[WishlistItem]:
        try:
            return self._read(Collection.WISHLIST)
        except Exception as e:
            raise StorageError(f"Failed to list wishlist: {e}")

    async def delete_wishlist_item(self, item_id: str) -> bool:
        deleted = self._delete_row(Collection.WISHLIST, item_id)
        if deleted:
            self._publish(Collection.WISHLIST)
        return deleted

    # -- acquisitions ---------------------------------------------------------

    async def add_acquisition(self, acquisition: Acquisition) -> Acquisition:
        self._append(Collection.ACQUISITIONS, self._acquisition_to_row(acquisition))
        self._publish(Collection.ACQUISITIONS)
        return acquisition

    async def list_acquisitions(self) -> list[Acquisition]:
        try:
            return self._read(Collection.ACQUISITIONS)
        except Exception as e:
            raise StorageError(f"Failed to list acquisitions: {e}")

    async def delete_acquisition(self, acquisition_id: str) -> bool:
        deleted = self._delete_row(Collection.ACQUISITIONS, acquisition_id)
        if deleted:
            self._publish(Collection.ACQUISITIONS)
        return deleted

    # -- lifecycle ------------------------------------------------------------

    async def reset_all(self) -> None:
        try:
            for collection in Collection:
                sheet = self._sheet(collection)
                # bottom-up so the remaining row numbers stay valid
                for idx, _ in reversed(self._user_rows(collection)):
                    sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to reset data: {e}")
        logger.info("sheets_user_data_reset", user_id=self._user_id)
        await self.refresh()

    async def refresh(self) -> None:
        """Re-read every collection and publish it (picks up edits made in Sheets)."""
        for collection in Collection:
            self._publish(collection)

    def subscribe(
        self,
        collection: Collection,
        callback: Optional[Callable[[Any], None]] = None,
    ) -> Subscription:
        collection = Collection(collection)
        channel = self._channels[collection]
        if not channel.subscriber_count:
            self._publish(collection)
        return channel.subscribe(callback)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _row_getter(row)
        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=safe_get(7) or None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # audit logging must not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    continue

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
