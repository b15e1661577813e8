"""
Tests for the storage backends.

Google Sheets is exercised through an in-process fake of the few
gspread calls the backend makes; nothing touches the network.
"""

import json

import pytest
from datetime import date, timedelta
from decimal import Decimal

from finanzas.config import GoogleSheetsSettings
from finanzas.models.audit import AuditEventBuilder
from finanzas.models.ledger import (
    Acquisition,
    Card,
    Categories,
    Transaction,
    TransactionType,
    UserProfile,
    WishlistItem,
)
from finanzas.services.storage import (
    Collection,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    LocalJsonLedgerStorage,
    NotFoundError,
    StorageError,
)
from finanzas.services.storage.google_sheets import TRANSACTION_COLUMNS


# =============================================================================
# FAKE GOOGLE SHEETS
# =============================================================================

class FakeWorksheet:
    def __init__(self, title: str, header: list[str]):
        self.title = title
        self.rows: list[list[str]] = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(value) for value in row])

    def update(self, values, range_name):
        idx = int(range_name.lstrip("A"))
        self.rows[idx - 1] = [str(value) for value in values[0]]

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    def __init__(self):
        self.settings = GoogleSheetsSettings.model_construct(
            credentials_path="unused.json",
            spreadsheet_id="test-sheet",
        )
        self.sheets: dict[str, FakeWorksheet] = {}

    def worksheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(title, columns)
        return self.sheets[title]


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


def expense(amount="1000", on=date(2025, 1, 10), **extra):
    return Transaction(
        type=TransactionType.EXPENSE,
        category=extra.pop("category", "Ocio"),
        amount=Decimal(amount),
        date=on,
        **extra,
    )


# =============================================================================
# IN-MEMORY
# =============================================================================

class TestInMemoryStorage:
    """Tests for the reference backend and the shared interface behaviour."""

    @pytest.mark.asyncio
    async def test_transactions_newest_first(self, storage):
        old = await storage.add_transaction(expense(on=date(2025, 1, 1)))
        new = await storage.add_transaction(expense(on=date(2025, 3, 1)))
        mid = await storage.add_transaction(expense(on=date(2025, 2, 1)))

        assert [t.id for t in await storage.list_transactions()] == [new.id, mid.id, old.id]

    @pytest.mark.asyncio
    async def test_listing_orders(self, storage):
        await storage.add_card(Card(name="Amex"))
        await storage.add_card(Card(name="Visa"))
        await storage.add_wishlist_item(WishlistItem(name="cheap", price=Decimal("10")))
        await storage.add_wishlist_item(WishlistItem(name="pricey", price=Decimal("99")))
        await storage.add_acquisition(Acquisition(name="a", price=Decimal("1"), date=date(2025, 1, 1)))
        await storage.add_acquisition(Acquisition(name="b", price=Decimal("1"), date=date(2025, 6, 1)))

        assert [c.name for c in await storage.list_cards()] == ["Visa", "Amex"]
        assert [w.name for w in await storage.list_wishlist()] == ["pricey", "cheap"]
        assert [a.name for a in await storage.list_acquisitions()] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_update_and_get(self, storage):
        txn = await storage.add_transaction(expense())
        await storage.update_transaction(txn.with_edits(amount=Decimal("5")))

        stored = await storage.get_transaction(txn.id)
        assert stored.amount == Decimal("5")
        assert await storage.get_transaction("missing") is None

    @pytest.mark.asyncio
    async def test_update_unknown_transaction(self, storage):
        with pytest.raises(NotFoundError):
            await storage.update_transaction(expense())

    @pytest.mark.asyncio
    async def test_delete_reports_outcome(self, storage):
        card = await storage.add_card(Card(name="Visa"))
        assert await storage.delete_card(card.id) is True
        assert await storage.delete_card(card.id) is False
        assert await storage.list_cards() == []

    @pytest.mark.asyncio
    async def test_update_profile(self, storage):
        with pytest.raises(NotFoundError):
            await storage.update_profile(name="Ana")

        await storage.save_profile(UserProfile())
        profile = await storage.update_profile(name="Ana", paid_months={"c1:2025-01": True})

        assert profile.name == "Ana"
        assert (await storage.get_profile()).paid_months == {"c1:2025-01": True}

    @pytest.mark.asyncio
    async def test_update_profile_rejects_invalid_values(self, storage):
        await storage.save_profile(UserProfile())
        with pytest.raises(ValueError):
            await storage.update_profile(categories={"income": [], "expense": ["Ocio"]})

    @pytest.mark.asyncio
    async def test_subscribe_delivers_current_then_changes(self, storage):
        await storage.add_card(Card(name="Visa"))
        received = []
        subscription = storage.subscribe(Collection.CARDS, received.append)

        await storage.add_card(Card(name="Amex"))
        subscription.cancel()
        await storage.add_card(Card(name="Diners"))

        assert [[c.name for c in snapshot] for snapshot in received] == [
            ["Visa"],
            ["Visa", "Amex"],
        ]

    @pytest.mark.asyncio
    async def test_profile_subscription_starts_with_none(self, storage):
        received = []
        storage.subscribe(Collection.PROFILE, received.append)
        await storage.save_profile(UserProfile(name="Ana"))
        assert received[0] is None
        assert received[1].name == "Ana"

    @pytest.mark.asyncio
    async def test_reset_all(self, storage):
        await storage.save_profile(UserProfile())
        await storage.add_transaction(expense())
        received = []
        storage.subscribe(Collection.TRANSACTIONS, received.append)

        await storage.reset_all()

        assert await storage.get_profile() is None
        assert await storage.list_transactions() == []
        assert received[-1] == []

    @pytest.mark.asyncio
    async def test_audit_storage(self):
        audit = InMemoryAuditStorage()
        first = AuditEventBuilder.data_reset(user_id="u", correlation_id=None)
        second = AuditEventBuilder.storage_error("add_card", "boom", user_id="u").model_copy(
            update={"timestamp": first.timestamp + timedelta(seconds=1)}
        )
        await audit.append_event(first)
        await audit.append_event(second)

        recent = await audit.get_recent_events(limit=1)
        assert recent == [second]


# =============================================================================
# LOCAL JSON
# =============================================================================

class TestLocalJsonStorage:
    """Tests for the offline backend."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, visa):
        storage = LocalJsonLedgerStorage("ana", data_dir=tmp_path)
        await storage.save_profile(UserProfile(name="Ana", paid_months={"card-visa:2025-01": True}))
        await storage.add_card(visa)
        txn = await storage.add_transaction(expense(
            amount="300000",
            category="Visa",
            card_id=visa.id,
            installments=3,
            first_payment_date=date(2025, 2, 5),
        ))
        await storage.add_wishlist_item(WishlistItem(name="PS5", price=Decimal("549990")))

        reloaded = LocalJsonLedgerStorage("ana", data_dir=tmp_path)

        profile = await reloaded.get_profile()
        assert profile.name == "Ana"
        assert profile.paid_months == {"card-visa:2025-01": True}
        assert await reloaded.list_transactions() == [txn]
        assert await reloaded.list_cards() == [visa]
        assert (await reloaded.list_wishlist())[0].price == Decimal("549990")

    @pytest.mark.asyncio
    async def test_document_uses_browser_storage_keys(self, tmp_path):
        storage = LocalJsonLedgerStorage("ana", data_dir=tmp_path)
        await storage.save_profile(UserProfile())
        await storage.add_transaction(Transaction(
            type=TransactionType.INCOME,
            category="Salario",
            amount=Decimal("1500000"),
            date=date(2025, 1, 1),
        ))

        document = json.loads(storage.path.read_text(encoding="utf-8"))
        assert set(document) == {
            "gf_userData",
            "gf_categories",
            "gf_paid_months",
            "gf_cards",
            "gf_transactions",
            "gf_wishlist",
            "gf_acquisitions",
        }
        assert document["gf_transactions"][0]["type"] == "ingreso"
        assert document["gf_categories"]["ingreso"] == ["Salario", "Ventas", "Freelance"]

    @pytest.mark.asyncio
    async def test_loads_web_app_document(self, tmp_path):
        legacy = {
            "gf_userData": {"name": "Ana", "phone": "", "email": "ana@example.com"},
            "gf_categories": {"ingreso": ["Salario"], "gasto": ["Ocio"]},
            "gf_cards": [{"id": 1, "name": "Visa Principal", "limit": 1000000}],
            "gf_transactions": [
                {"id": 1, "type": "ingreso", "category": "Salario", "description": "Sueldo",
                 "amount": 1500000, "date": "2025-01-01"},
                {"id": 30, "type": "gasto", "category": "Visa Principal", "description": "TV",
                 "amount": 329990, "date": "2024-12-10", "installments": 3,
                 "firstPaymentDate": "2025-01-05"},
            ],
            "gf_paid_months": {},
        }
        (tmp_path / "ana.json").write_text(json.dumps(legacy), encoding="utf-8")

        storage = LocalJsonLedgerStorage("ana", data_dir=tmp_path)
        profile = await storage.get_profile()
        txns = {t.id: t for t in await storage.list_transactions()}

        assert profile.country_code == "+56"
        assert profile.categories == Categories(income=["Salario"], expense=["Ocio"])
        assert txns["1"].type == TransactionType.INCOME
        assert txns["30"].card_id == "1"
        assert txns["30"].installments == 3
        assert await storage.list_wishlist() == []

    def test_malformed_document(self, tmp_path):
        (tmp_path / "ana.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            LocalJsonLedgerStorage("ana", data_dir=tmp_path)

    def test_invalid_record(self, tmp_path):
        document = {"gf_transactions": [{"id": 1, "type": "gasto", "category": "Ocio",
                                         "amount": -5, "date": "2025-01-01"}]}
        (tmp_path / "ana.json").write_text(json.dumps(document), encoding="utf-8")
        with pytest.raises(StorageError):
            LocalJsonLedgerStorage("ana", data_dir=tmp_path)

    @pytest.mark.asyncio
    async def test_failed_write_changes_nothing(self, tmp_path, monkeypatch, visa):
        storage = LocalJsonLedgerStorage("ana", data_dir=tmp_path)
        await storage.add_card(visa)
        received = []
        storage.subscribe(Collection.CARDS, received.append)

        def disk_full(src, dst):
            raise OSError("disk full")

        with monkeypatch.context() as m:
            m.setattr("finanzas.services.storage.local_json.os.replace", disk_full)
            with pytest.raises(StorageError):
                await storage.add_transaction(expense())
            with pytest.raises(StorageError):
                await storage.delete_card(visa.id)

        assert await storage.list_transactions() == []
        assert await storage.list_cards() == [visa]
        assert received == [[visa]]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["ana.json"]

        reloaded = LocalJsonLedgerStorage("ana", data_dir=tmp_path)
        assert await reloaded.list_transactions() == []
        assert await reloaded.list_cards() == [visa]

    @pytest.mark.asyncio
    async def test_reset_removes_file(self, tmp_path):
        storage = LocalJsonLedgerStorage("ana", data_dir=tmp_path)
        await storage.save_profile(UserProfile())
        assert storage.path.exists()

        await storage.reset_all()
        assert not storage.path.exists()

    def test_default_data_dir_from_settings(self, tmp_path):
        storage = LocalJsonLedgerStorage("ana")
        assert storage.path == tmp_path / "data" / "ana.json"


# =============================================================================
# GOOGLE SHEETS
# =============================================================================

class TestGoogleSheetsStorage:
    """Tests for the cloud backend against the fake client."""

    @pytest.mark.asyncio
    async def test_rows_are_scoped_to_user(self, sheets_client):
        ana = GoogleSheetsLedgerStorage("ana", sheets_client)
        bob = GoogleSheetsLedgerStorage("bob", sheets_client)

        await ana.add_transaction(expense(amount="10"))
        await bob.add_transaction(expense(amount="20"))

        assert [t.amount for t in await ana.list_transactions()] == [Decimal("10")]
        assert [t.amount for t in await bob.list_transactions()] == [Decimal("20")]
        assert len(sheets_client.sheets["Transactions"].rows) == 3

    @pytest.mark.asyncio
    async def test_transaction_fields_survive_rows(self, sheets_client, visa):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        await storage.add_card(visa)
        txn = await storage.add_transaction(expense(
            amount="329990.50",
            category="Visa",
            card_id=visa.id,
            installments=3,
            first_payment_date=date(2025, 2, 5),
        ))
        assert await storage.list_transactions() == [txn]

    @pytest.mark.asyncio
    async def test_update_and_delete(self, sheets_client):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        txn = await storage.add_transaction(expense())
        other = await storage.add_transaction(expense(on=date(2024, 1, 1)))

        await storage.update_transaction(txn.with_edits(description="Cine"))
        assert (await storage.get_transaction(txn.id)).description == "Cine"

        assert await storage.delete_transaction(other.id) is True
        assert await storage.delete_transaction(other.id) is False
        assert [t.id for t in await storage.list_transactions()] == [txn.id]

    @pytest.mark.asyncio
    async def test_update_unknown_transaction(self, sheets_client):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        with pytest.raises(NotFoundError):
            await storage.update_transaction(expense())

    @pytest.mark.asyncio
    async def test_profile_is_upserted(self, sheets_client):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        assert await storage.get_profile() is None

        await storage.save_profile(UserProfile(name="Ana"))
        await storage.update_profile(paid_months={"c1:2025-01": True})

        profile = await storage.get_profile()
        assert profile.name == "Ana"
        assert profile.paid_months == {"c1:2025-01": True}
        assert profile.categories.expense[-1] == "Pago Tarjeta"
        assert len(sheets_client.sheets["Profiles"].rows) == 2

    @pytest.mark.asyncio
    async def test_name_linked_rows_get_card_id(self, sheets_client):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        card = await storage.add_card(Card(name="Visa Principal"))
        sheets_client.worksheet("Transactions", TRANSACTION_COLUMNS).append_row([
            "ana", "legacy-1", "expense", "Visa Principal", "TV", "300", "2025-01-01",
            "", "3", "2025-01-05", "",
        ])

        [txn] = await storage.list_transactions()
        assert txn.card_id == card.id

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, sheets_client):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        good = await storage.add_transaction(expense())
        sheets_client.sheets["Transactions"].append_row(
            ["ana", "bad", "expense", "Ocio", "", "lots", "yesterday"]
        )
        assert await storage.list_transactions() == [good]

    @pytest.mark.asyncio
    async def test_reset_only_touches_own_rows(self, sheets_client):
        ana = GoogleSheetsLedgerStorage("ana", sheets_client)
        bob = GoogleSheetsLedgerStorage("bob", sheets_client)
        for storage in (ana, bob):
            await storage.save_profile(UserProfile())
            await storage.add_card(Card(name="Visa"))
            await storage.add_transaction(expense())
            await storage.add_transaction(expense())

        await ana.reset_all()

        assert await ana.get_profile() is None
        assert await ana.list_transactions() == []
        assert len(await bob.list_transactions()) == 2
        assert await bob.get_profile() is not None

    @pytest.mark.asyncio
    async def test_writes_publish_snapshots(self, sheets_client):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        received = []
        subscription = storage.subscribe(Collection.WISHLIST, received.append)

        item = await storage.add_wishlist_item(WishlistItem(name="PS5", price=Decimal("10")))
        await storage.delete_wishlist_item(item.id)
        subscription.cancel()

        assert received == [[], [item], []]

    @pytest.mark.asyncio
    async def test_refresh_picks_up_outside_edits(self, sheets_client):
        storage = GoogleSheetsLedgerStorage("ana", sheets_client)
        received = []
        storage.subscribe(Collection.CARDS, received.append)

        sheets_client.sheets["Cards"].append_row(["ana", "c9", "Amex", "5000"])
        await storage.refresh()

        assert [c.name for c in received[-1]] == ["Amex"]


class TestGoogleSheetsAuditStorage:
    @pytest.mark.asyncio
    async def test_append_and_read_back(self, sheets_client):
        audit = GoogleSheetsAuditStorage(sheets_client)
        event = AuditEventBuilder.month_paid_changed(
            card_id="c1",
            month="2025-01",
            paid=True,
            user_id="ana",
            correlation_id=None,
        )

        assert await audit.append_event(event) is True
        [stored] = await audit.get_recent_events()
        assert stored.event_id == event.event_id
        assert stored.details == {"month": "2025-01", "paid": True}
        assert stored.is_user_action is True

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, sheets_client):
        class BrokenClient(FakeSheetsClient):
            def worksheet(self, title, columns, rows=1000):
                raise RuntimeError("quota exceeded")

        audit = GoogleSheetsAuditStorage(BrokenClient())
        event = AuditEventBuilder.data_reset(user_id="ana", correlation_id=None)
        assert await audit.append_event(event) is False
