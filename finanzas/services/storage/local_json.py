"""
Local JSON Storage Implementation

The offline variant. The whole ledger of one user lives in a single JSON
document laid out like the browser storage of the web app:

    gf_userData, gf_categories, gf_cards, gf_transactions,
    gf_wishlist, gf_acquisitions, gf_paid_months

Documents written by the web app load as-is: Spanish type names
("ingreso", "gasto", "ahorro"), numeric ids, camelCase keys and card
purchases linked only by the card name in ``category``.

The file is rewritten after every change.
"""

import json
import os
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import structlog

from finanzas.config import get_settings
from finanzas.ledger.aggregator import link_card_references
from finanzas.models.ledger import (
    Acquisition,
    Card,
    Categories,
    Transaction,
    TransactionType,
    UserProfile,
    WishlistItem,
)
from finanzas.services.storage.interface import Collection, StorageError
from finanzas.services.storage.memory import InMemoryLedgerStorage


logger = structlog.get_logger(__name__)


# Type names used by the web app
_LEGACY_TYPES = {
    "ingreso": TransactionType.INCOME,
    "gasto": TransactionType.EXPENSE,
    "ahorro": TransactionType.SAVING,
}
_STORED_TYPES = {value: key for key, value in _LEGACY_TYPES.items()}


def _money(value: Any) -> Decimal:
    # floats go through str() so 0.1 stays 0.1
    return Decimal(str(value if value not in (None, "") else 0))


def _optional_date(value: Any) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _optional_id(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _parse_type(value: str) -> TransactionType:
    if value in _LEGACY_TYPES:
        return _LEGACY_TYPES[value]
    return TransactionType(value)


class LocalJsonLedgerStorage(InMemoryLedgerStorage):
    """
    Ledger storage persisted to ``<data_dir>/<user_id>.json``.

    Reads the document once on creation and keeps it in memory; every
    write goes back to disk.
    """

    def __init__(self, user_id: str = "local", data_dir: Optional[Path] = None):
        super().__init__(user_id)
        directory = Path(data_dir or get_settings().local_storage.data_dir)
        self._path = directory / f"{user_id}.json"
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    # -- document -> models ---------------------------------------------------

    def _load(self) -> None:
        if not self._path.exists():
            logger.debug("local_storage_empty", path=str(self._path))
            return

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {self._path}: {e}") from e

        try:
            self._profile = self._profile_from_document(document)
            cards = [self._card_from_dict(c) for c in document.get("gf_cards", [])]
            transactions = link_card_references(
                [self._transaction_from_dict(t) for t in document.get("gf_transactions", [])],
                cards,
            )
            wishlist = [self._wishlist_from_dict(w) for w in document.get("gf_wishlist", [])]
            acquisitions = [
                self._acquisition_from_dict(a) for a in document.get("gf_acquisitions", [])
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed ledger document {self._path}: {e}") from e

        for collection, records in (
            (Collection.CARDS, cards),
            (Collection.TRANSACTIONS, transactions),
            (Collection.WISHLIST, wishlist),
            (Collection.ACQUISITIONS, acquisitions),
        ):
            self._records[collection] = {record.id: record for record in records}

        logger.info(
            "local_storage_loaded",
            path=str(self._path),
            transactions=len(transactions),
            cards=len(cards),
        )

    @staticmethod
    def _profile_from_document(document: dict) -> Optional[UserProfile]:
        user = document.get("gf_userData")
        if user is None:
            return None

        profile = {
            "name": user.get("name") or "Usuario",
            "phone": user.get("phone", ""),
            "email": user.get("email", ""),
            "country_code": user.get("countryCode") or "+56",
            "paid_months": document.get("gf_paid_months", {}),
        }
        categories = document.get("gf_categories")
        if categories:
            profile["categories"] = Categories(
                income=categories.get("ingreso", categories.get("income", [])),
                expense=categories.get("gasto", categories.get("expense", [])),
            )
        return UserProfile.model_validate(profile)

    @staticmethod
    def _card_from_dict(data: dict) -> Card:
        return Card(id=str(data["id"]), name=data["name"], limit=_money(data.get("limit")))

    @staticmethod
    def _transaction_from_dict(data: dict) -> Transaction:
        fields = {
            "id": str(data["id"]),
            "type": _parse_type(data["type"]),
            "category": data["category"],
            "description": data.get("description", ""),
            "amount": _money(data["amount"]),
            "date": date.fromisoformat(data["date"]),
            "card_id": _optional_id(data.get("cardId")),
            "installments": data.get("installments"),
            "first_payment_date": _optional_date(data.get("firstPaymentDate")),
        }
        if data.get("createdAt"):
            fields["created_at"] = datetime.fromisoformat(data["createdAt"])
        return Transaction(**fields)

    @staticmethod
    def _wishlist_from_dict(data: dict) -> WishlistItem:
        return WishlistItem(
            id=str(data["id"]),
            name=data["name"],
            link=data.get("link", ""),
            price=_money(data["price"]),
        )

    @staticmethod
    def _acquisition_from_dict(data: dict) -> Acquisition:
        return Acquisition(
            id=str(data["id"]),
            name=data["name"],
            link=data.get("link", ""),
            price=_money(data["price"]),
            date=date.fromisoformat(data["date"]),
            wishlist_item_id=_optional_id(data.get("wishlistItemId")),
        )

    # -- models -> document ---------------------------------------------------

    def _to_document(self) -> dict:
        document: dict[str, Any] = {}

        if self._profile is not None:
            document["gf_userData"] = {
                "name": self._profile.name,
                "phone": self._profile.phone,
                "email": self._profile.email,
                "countryCode": self._profile.country_code,
            }
            document["gf_categories"] = {
                "ingreso": self._profile.categories.income,
                "gasto": self._profile.categories.expense,
            }
            document["gf_paid_months"] = dict(self._profile.paid_months)

        document["gf_cards"] = [
            {"id": c.id, "name": c.name, "limit": str(c.limit)}
            for c in self._snapshot(Collection.CARDS)
        ]
        document["gf_transactions"] = [
            {
                "id": t.id,
                "type": _STORED_TYPES[t.type],
                "category": t.category,
                "description": t.description,
                "amount": str(t.amount),
                "date": t.date.isoformat(),
                "cardId": t.card_id,
                "installments": t.installments,
                "firstPaymentDate": (
                    t.first_payment_date.isoformat() if t.first_payment_date else None
                ),
                "createdAt": t.created_at.isoformat(),
            }
            for t in self._snapshot(Collection.TRANSACTIONS)
        ]
        document["gf_wishlist"] = [
            {"id": w.id, "name": w.name, "link": w.link, "price": str(w.price)}
            for w in self._snapshot(Collection.WISHLIST)
        ]
        document["gf_acquisitions"] = [
            {
                "id": a.id,
                "name": a.name,
                "link": a.link,
                "price": str(a.price),
                "date": a.date.isoformat(),
                "wishlistItemId": a.wishlist_item_id,
            }
            for a in self._snapshot(Collection.ACQUISITIONS)
        ]
        return document

    def _persist(self) -> None:
        tmp_path = self._path.with_suffix(".json.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._to_document(), f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            logger.error("local_storage_write_failed", path=str(self._path), error=str(e))
            raise StorageError(f"Could not write {self._path}: {e}") from e

    async def reset_all(self) -> None:
        await super().reset_all()
        self._path.unlink(missing_ok=True)
