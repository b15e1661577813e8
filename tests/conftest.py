"""Shared fixtures for the Finanzas test suite."""

from datetime import date
from decimal import Decimal

import pytest

from finanzas.config import get_settings
from finanzas.models.ledger import Card, Transaction, TransactionType
from finanzas.services.storage import InMemoryLedgerStorage


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep every test away from real env files and data directories."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOCAL_STORAGE_DATA_DIR", str(tmp_path / "data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def visa() -> Card:
    return Card(id="card-visa", name="Visa", limit=Decimal("1000000"))


@pytest.fixture
def mastercard() -> Card:
    return Card(id="card-mc", name="Mastercard", limit=Decimal("500000"))


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage("user-1")


def make_transaction(
    type: TransactionType = TransactionType.EXPENSE,
    amount: str = "1000",
    category: str = "Ocio",
    on: date = date(2025, 1, 10),
    **extra,
) -> Transaction:
    """Build a transaction with sensible defaults for tests."""
    return Transaction(
        type=type,
        category=category,
        amount=Decimal(amount),
        date=on,
        **extra,
    )


@pytest.fixture
def make_txn():
    return make_transaction
