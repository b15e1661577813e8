"""
Main Orchestrator for Finanzas

This module ties together all the components and defines the
end-to-end flows a user goes through:
1. First use (default profile, cards and optional demo data)
2. Recording, editing and deleting transactions
3. Cards and their monthly statements
4. Wishlist and acquisitions
5. Profile, categories and the full data reset
6. Live dashboard view (subscriptions -> LedgerView)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches storage without passing validation
- Derived figures always come from the ledger aggregator
- Every change is audited
- Storage errors are logged and re-raised for the caller to show

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Union
from uuid import UUID

import structlog

from finanzas.audit import AuditLogger, create_correlation_id
from finanzas.config import get_settings
from finanzas.ledger.aggregator import (
    card_month_status,
    category_breakdown,
    compute_summary,
    is_month_paid,
    mark_month_paid,
    savings_available,
    wishlist_progress,
)
from finanzas.models.ledger import (
    Acquisition,
    Card,
    Categories,
    LedgerView,
    Transaction,
    TransactionType,
    UserProfile,
    ValidationResult,
    WishlistItem,
    YearMonth,
)
from finanzas.reports import MonthlyReport, ReportBuilder
from finanzas.services.storage import (
    Collection,
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
from finanzas.validation import (
    TransactionValidator,
    ValidationError,
    build_card,
    build_wishlist_item,
    validate_profile_update,
)


logger = structlog.get_logger(__name__)


RESET_CONFIRMATION_WORD = "BORRAR"

DEFAULT_CARDS = (
    ("Visa Principal", Decimal("1000000")),
    ("Mastercard", Decimal("500000")),
)


class ConfirmationRequiredError(Exception):
    """A destructive action was requested without the confirmation word."""
    pass


# =============================================================================
# DEMO DATA
# =============================================================================

def _day(month: YearMonth, day: int) -> date:
    return date(month.year, month.month, day)


def seed_transactions(cards: Mapping[str, Card], today: date) -> list[Transaction]:
    """
    Demo ledger for a new user, dated around ``today``.

    Args:
        cards: The default cards by name
    """
    this = YearMonth.from_date(today)
    ago = this.add_months

    plain = [
        # (type, category, description, amount, month, day)
        (TransactionType.INCOME, "Salario", "Sueldo Mensual", 1500000, this, 1),
        (TransactionType.INCOME, "Freelance", "Proyecto Web E-commerce", 450000, ago(-1), 15),
        (TransactionType.INCOME, "Ventas", "Venta Consola Antigua", 120000, this, 10),
        (TransactionType.INCOME, "Salario", "Bono Trimestral", 300000, ago(-2), 1),
        (TransactionType.EXPENSE, "Alimentación", "Supermercado", 85000, this, 5),
        (TransactionType.EXPENSE, "Alimentación", "Feria Verduras Semanal", 25000, this, 12),
        (TransactionType.EXPENSE, "Alimentación", "Cena Restaurante Italiano", 45000, this, 20),
        (TransactionType.EXPENSE, "Servicios", "Internet Fibra", 25990, this, 10),
        (TransactionType.EXPENSE, "Servicios", "Cuenta de Luz", 35000, this, 15),
        (TransactionType.EXPENSE, "Servicios", "Plan Celular", 19990, this, 2),
        (TransactionType.EXPENSE, "Transporte", "Carga Bip!", 15000, this, 3),
        (TransactionType.EXPENSE, "Transporte", "Uber al Aeropuerto", 22000, this, 25),
        (TransactionType.EXPENSE, "Ocio", "Entradas Cine", 18000, this, 8),
        (TransactionType.EXPENSE, "Ocio", "Juego Nintendo Switch", 45000, ago(-1), 20),
        (TransactionType.EXPENSE, "Salud", "Farmacia Remedios", 12500, this, 18),
        (TransactionType.EXPENSE, "Salud", "Consulta Dental", 50000, ago(-1), 5),
        (TransactionType.EXPENSE, "Educación", "Curso Online Inglés", 75000, ago(-1), 10),
        (TransactionType.SAVING, "Ahorro General", "Ahorro Mes Actual", 150000, this, 28),
        (TransactionType.SAVING, "Ahorro General", "Ahorro Mes Pasado", 120000, ago(-1), 28),
        (TransactionType.SAVING, "Ahorro General", "Ahorro hace 2 meses", 100000, ago(-2), 28),
        (TransactionType.SAVING, "Ahorro General", "Ahorro hace 3 meses", 90000, ago(-3), 28),
        (TransactionType.SAVING, "Ahorro General", "Bono Navidad Ahorrado", 200000, ago(-4), 25),
    ]
    on_card = [
        # (card, description, amount, purchase (month, day), installments, first payment (month, day))
        ("Visa Principal", "TV Smart 55\"", 329990, (ago(-1), 10), 3, (this, 5)),
        ("Visa Principal", "Pasajes Vacaciones Sur", 450000, (ago(-2), 15), 6, (ago(-1), 5)),
        ("Visa Principal", "Ropa Temporada", 120000, (this, 2), 3, (ago(1), 5)),
        ("Visa Principal", "Notebook Trabajo", 890000, (ago(-3), 20), 12, (ago(-2), 5)),
        ("Mastercard", "Netflix Premium", 10790, (this, 15), 1, (this, 15)),
        ("Mastercard", "Spotify Duo", 9500, (this, 20), 1, (this, 20)),
        ("Mastercard", "Uber Eats Cena", 28500, (this, 12), 1, (ago(1), 5)),
        ("Mastercard", "Suscripción Gym", 35000, (this, 1), 1, (this, 1)),
    ]

    transactions = [
        Transaction(
            type=kind,
            category=category,
            description=description,
            amount=Decimal(amount),
            date=_day(month, day),
        )
        for kind, category, description, amount, month, day in plain
    ]
    transactions += [
        Transaction(
            type=TransactionType.EXPENSE,
            category=card_name,
            description=description,
            amount=Decimal(amount),
            date=_day(*bought),
            card_id=cards[card_name].id,
            installments=installments,
            first_payment_date=_day(*first),
        )
        for card_name, description, amount, bought, installments, first in on_card
        if card_name in cards
    ]
    return transactions


def seed_wishlist() -> list[WishlistItem]:
    return [
        WishlistItem(name=name, price=Decimal(price))
        for name, price in (
            ("PlayStation 5", 549990),
            ("Viaje a Brasil", 850000),
            ("iPhone 15", 949990),
            ("Bicicleta Trek", 380000),
            ("Silla Gamer", 189990),
        )
    ]


# =============================================================================
# LIVE VIEW
# =============================================================================

def build_ledger_view(
    profile: Optional[UserProfile],
    transactions: list[Transaction],
    cards: list[Card],
    wishlist: list[WishlistItem],
    acquisitions: list[Acquisition],
    month: YearMonth,
    quantum: Decimal,
) -> LedgerView:
    """Derive the dashboard from one set of snapshots."""
    profile = profile or UserProfile()
    available = savings_available(transactions, acquisitions)
    return LedgerView(
        month=month,
        profile=profile,
        transactions=transactions,
        cards=cards,
        wishlist=wishlist,
        acquisitions=acquisitions,
        summary=compute_summary(transactions),
        card_statuses=[
            card_month_status(card, transactions, profile.paid_months, month, quantum)
            for card in cards
        ],
        expense_breakdown=category_breakdown(transactions, TransactionType.EXPENSE),
        savings_available=available,
        wishlist_progress={item.id: wishlist_progress(item, available) for item in wishlist},
    )


class LedgerWatch:
    """
    Live LedgerView for one user.

    Subscribes to every collection and hands a freshly computed view to
    the callback each time any of them changes. The first view is
    delivered once every collection has reported its current snapshot.
    """

    _WATCHED = (
        Collection.PROFILE,
        Collection.TRANSACTIONS,
        Collection.CARDS,
        Collection.WISHLIST,
        Collection.ACQUISITIONS,
    )

    def __init__(
        self,
        storage: LedgerStorageInterface,
        callback: Callable[[LedgerView], None],
        month: Optional[YearMonth] = None,
        quantum: Optional[Decimal] = None,
    ):
        self._callback = callback
        self._month = month
        self._quantum = quantum or get_settings().app.currency_quantum
        self._snapshots: dict[Collection, Any] = {}
        self._closed = False
        self._subscriptions: list[Subscription] = []
        for collection in self._WATCHED:
            self._subscriptions.append(
                storage.subscribe(collection, self._on_snapshot(collection))
            )

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_snapshot(self, collection: Collection) -> Callable[[Any], None]:
        def receive(snapshot: Any) -> None:
            self._snapshots[collection] = snapshot
            if len(self._snapshots) == len(self._WATCHED):
                self._callback(self.current())
        return receive

    def current(self) -> LedgerView:
        """Recompute the view from the latest snapshots."""
        return build_ledger_view(
            profile=self._snapshots.get(Collection.PROFILE),
            transactions=self._snapshots.get(Collection.TRANSACTIONS, []),
            cards=self._snapshots.get(Collection.CARDS, []),
            wishlist=self._snapshots.get(Collection.WISHLIST, []),
            acquisitions=self._snapshots.get(Collection.ACQUISITIONS, []),
            month=self._month or YearMonth.from_date(date.today()),
            quantum=self._quantum,
        )

    def close(self) -> None:
        """Cancel every subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription.cancel()


# =============================================================================
# SESSION
# =============================================================================

class LedgerSession:
    """
    Orchestrates every user-facing flow for one user.

    Forms come in as plain mappings (what a UI would submit); they are
    validated here, stored, and audited.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger(user_id=storage.user_id)
        self._settings = get_settings().app

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    @property
    def user_id(self) -> str:
        return self._storage.user_id

    async def _guarded(self, operation: str, call, correlation_id: Optional[UUID] = None):
        """Await a storage call; log and audit StorageError before re-raising it."""
        try:
            return await call
        except NotFoundError:
            raise
        except StorageError as e:
            logger.error("storage_failed", operation=operation, user_id=self.user_id, error=str(e))
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

    async def _require_profile(self) -> UserProfile:
        profile = await self._storage.get_profile()
        if profile is None:
            raise NotFoundError(f"No profile for user {self.user_id}; call ensure_initialized first")
        return profile

    async def _validation_failed(self, entity_type: str, error: ValidationError, correlation_id: UUID) -> None:
        await self._audit_logger.log_validation_failed(
            entity_type=entity_type,
            issues=error.to_dicts(),
            correlation_id=correlation_id,
        )

    # -- first use ------------------------------------------------------------

    async def ensure_initialized(
        self,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        today: Optional[date] = None,
    ) -> UserProfile:
        """
        Create the profile, default cards and (optionally) demo data on first use.

        Does nothing for a user who already has a profile.
        """
        existing = await self._storage.get_profile()
        if existing is not None:
            return existing

        correlation_id = create_correlation_id()
        seed = self._settings.seed_demo_data

        profile = UserProfile(
            name=display_name or "Usuario",
            email=email or "",
            country_code=self._settings.default_country_code,
        )
        await self._guarded("create_profile", self._storage.save_profile(profile), correlation_id)

        cards = {}
        for name, limit in DEFAULT_CARDS:
            card = await self._guarded("create_profile", self._storage.add_card(Card(name=name, limit=limit)), correlation_id)
            cards[name] = card

        if seed:
            for transaction in seed_transactions(cards, today or date.today()):
                await self._guarded("seed_data", self._storage.add_transaction(transaction), correlation_id)
            for item in seed_wishlist():
                await self._guarded("seed_data", self._storage.add_wishlist_item(item), correlation_id)

        await self._audit_logger.log_profile_created(seeded=seed, correlation_id=correlation_id)
        logger.info("user_initialized", user_id=self.user_id, seeded=seed)
        return profile

    # -- transactions ---------------------------------------------------------

    async def add_transaction(self, form: Mapping[str, Any]) -> tuple[Transaction, ValidationResult]:
        """
        Validate and store a transaction form.

        Returns the stored transaction and the validation result (warnings).

        Raises:
            ValidationError: The form has error-level issues
            StorageError: The write failed
        """
        correlation_id = create_correlation_id()
        profile = await self._storage.get_profile()
        validator = TransactionValidator(
            cards=await self._storage.list_cards(),
            categories=profile.categories if profile else None,
        )

        try:
            transaction, result = validator.build_transaction(form)
        except ValidationError as e:
            await self._validation_failed("transaction", e, correlation_id)
            raise

        await self._guarded("add_transaction", self._storage.add_transaction(transaction), correlation_id)
        await self._audit_logger.log_record_added(
            entity_type="transaction",
            entity_id=transaction.id,
            summary=f"{transaction.type.value} {transaction.category} {transaction.amount}",
            correlation_id=correlation_id,
        )
        return transaction, result

    async def edit_transaction(
        self,
        transaction_id: str,
        description: Any = None,
        amount: Any = None,
        date: Any = None,
    ) -> Transaction:
        """
        Change description, amount and/or date of a transaction.

        Raises:
            NotFoundError: Unknown transaction
            ValidationError: An edited value is invalid
        """
        correlation_id = create_correlation_id()
        current = await self._storage.get_transaction(transaction_id)
        if current is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        try:
            edited = TransactionValidator().validate_edit(current, description, amount, date)
        except ValidationError as e:
            await self._validation_failed("transaction", e, correlation_id)
            raise

        await self._guarded("edit_transaction", self._storage.update_transaction(edited), correlation_id)

        changes = {
            field: getattr(edited, field)
            for field in ("description", "amount", "date")
            if getattr(edited, field) != getattr(current, field)
        }
        await self._audit_logger.log_transaction_updated(
            transaction_id=transaction_id,
            changes=changes,
            correlation_id=correlation_id,
        )
        return edited

    async def delete_transaction(self, transaction_id: str) -> bool:
        correlation_id = create_correlation_id()
        deleted = await self._guarded(
            "delete_transaction", self._storage.delete_transaction(transaction_id), correlation_id
        )
        if deleted:
            await self._audit_logger.log_record_deleted("transaction", transaction_id, correlation_id)
        return deleted

    # -- cards ----------------------------------------------------------------

    async def add_card(self, form: Mapping[str, Any]) -> Card:
        correlation_id = create_correlation_id()
        try:
            card = build_card(form)
        except ValidationError as e:
            await self._validation_failed("card", e, correlation_id)
            raise

        await self._guarded("add_card", self._storage.add_card(card), correlation_id)
        await self._audit_logger.log_record_added("card", card.id, card.name, correlation_id)
        return card

    async def delete_card(self, card_id: str) -> bool:
        """
        Remove a card. Purchases made with it stay in the ledger but no
        longer show in any card statement.
        """
        correlation_id = create_correlation_id()
        deleted = await self._guarded("delete_card", self._storage.delete_card(card_id), correlation_id)
        if deleted:
            await self._audit_logger.log_record_deleted("card", card_id, correlation_id)
        return deleted

    async def toggle_month_paid(self, card_id: str, year_month: Union[YearMonth, str]) -> bool:
        """
        Flip the paid acknowledgement of a card statement.

        Returns the new state.
        """
        correlation_id = create_correlation_id()
        if isinstance(year_month, str):
            year_month = YearMonth.parse(year_month)

        card = next((c for c in await self._storage.list_cards() if c.id == card_id), None)
        if card is None:
            raise NotFoundError(f"Card not found: {card_id}")

        profile = await self._require_profile()
        paid = not is_month_paid(profile.paid_months, card, year_month)
        await self._guarded(
            "toggle_month_paid",
            self._storage.update_profile(
                paid_months=mark_month_paid(profile.paid_months, card, year_month, paid)
            ),
            correlation_id,
        )
        await self._audit_logger.log_month_paid_changed(
            card_id=card_id,
            month=str(year_month),
            paid=paid,
            correlation_id=correlation_id,
        )
        return paid

    # -- wishlist -------------------------------------------------------------

    async def add_wishlist_item(self, form: Mapping[str, Any]) -> WishlistItem:
        correlation_id = create_correlation_id()
        try:
            item = build_wishlist_item(form)
        except ValidationError as e:
            await self._validation_failed("wishlist", e, correlation_id)
            raise

        await self._guarded("add_wishlist_item", self._storage.add_wishlist_item(item), correlation_id)
        await self._audit_logger.log_record_added("wishlist", item.id, item.name, correlation_id)
        return item

    async def delete_wishlist_item(self, item_id: str) -> bool:
        correlation_id = create_correlation_id()
        deleted = await self._guarded(
            "delete_wishlist_item", self._storage.delete_wishlist_item(item_id), correlation_id
        )
        if deleted:
            await self._audit_logger.log_record_deleted("wishlist", item_id, correlation_id)
        return deleted

    async def acquire_wishlist_item(
        self,
        item_id: str,
        bought_on: Optional[date] = None,
    ) -> Acquisition:
        """
        Mark a wishlist item as bought.

        The item leaves the wishlist and becomes an acquisition, which is
        paid from available savings.
        """
        correlation_id = create_correlation_id()
        item = next((w for w in await self._storage.list_wishlist() if w.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Wishlist item not found: {item_id}")

        acquisition = Acquisition.from_wishlist_item(item, bought_on or date.today())
        await self._guarded("acquire_wishlist_item", self._storage.add_acquisition(acquisition), correlation_id)
        try:
            await self._guarded(
                "acquire_wishlist_item", self._storage.delete_wishlist_item(item_id), correlation_id
            )
        except StorageError:
            # keep the item in exactly one place
            try:
                await self._storage.delete_acquisition(acquisition.id)
            except StorageError as rollback_error:
                logger.error("acquisition_rollback_failed", acquisition_id=acquisition.id, error=str(rollback_error))
                await self._audit_logger.log_error(
                    error_type="acquisition_rollback_failed",
                    error_message=str(rollback_error),
                    details={"acquisition_id": acquisition.id, "wishlist_item_id": item_id},
                    correlation_id=correlation_id,
                )
            raise
        await self._audit_logger.log_record_added(
            "acquisition", acquisition.id, f"{item.name} {item.price}", correlation_id
        )
        return acquisition

    async def delete_acquisition(self, acquisition_id: str) -> bool:
        correlation_id = create_correlation_id()
        deleted = await self._guarded(
            "delete_acquisition", self._storage.delete_acquisition(acquisition_id), correlation_id
        )
        if deleted:
            await self._audit_logger.log_record_deleted("acquisition", acquisition_id, correlation_id)
        return deleted

    # -- profile --------------------------------------------------------------

    async def _save_profile_changes(
        self,
        operation: str,
        fields: Mapping[str, Any],
        correlation_id: UUID,
    ) -> UserProfile:
        profile = await self._require_profile()
        try:
            updated = validate_profile_update(profile, fields)
        except ValidationError as e:
            await self._validation_failed("profile", e, correlation_id)
            raise
        return await self._guarded(operation, self._storage.save_profile(updated), correlation_id)

    async def update_profile(
        self,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        country_code: Optional[str] = None,
    ) -> UserProfile:
        """
        Update the descriptive profile fields that were given.

        Raises:
            ValidationError: If a value is too long
        """
        correlation_id = create_correlation_id()
        fields = {
            key: value
            for key, value in (
                ("name", name),
                ("phone", phone),
                ("email", email),
                ("country_code", country_code),
            )
            if value is not None
        }
        if not fields:
            return await self._require_profile()

        profile = await self._save_profile_changes("update_profile", fields, correlation_id)
        await self._audit_logger.log_profile_updated(fields=list(fields), correlation_id=correlation_id)
        return profile

    async def update_categories(self, categories: Union[Categories, Mapping[str, Any]]) -> UserProfile:
        """
        Replace the user's category lists.

        Raises:
            ValidationError: If a list is empty or holds a blank name
        """
        correlation_id = create_correlation_id()
        profile = await self._save_profile_changes(
            "update_categories", {"categories": categories}, correlation_id
        )
        await self._audit_logger.log_categories_updated(
            income_count=len(profile.categories.income),
            expense_count=len(profile.categories.expense),
            correlation_id=correlation_id,
        )
        return profile

    async def reset_all_data(self, confirmation: str) -> None:
        """
        Delete every record of this user.

        Raises:
            ConfirmationRequiredError: Unless ``confirmation`` is the confirmation word
        """
        if (confirmation or "").strip() != RESET_CONFIRMATION_WORD:
            raise ConfirmationRequiredError(
                f"Type {RESET_CONFIRMATION_WORD} to confirm deleting all data"
            )
        correlation_id = create_correlation_id()
        await self._guarded("reset_all_data", self._storage.reset_all(), correlation_id)
        await self._audit_logger.log_data_reset(correlation_id)
        logger.warning("user_data_reset", user_id=self.user_id)

    # -- views ----------------------------------------------------------------

    def watch(
        self,
        callback: Callable[[LedgerView], None],
        month: Optional[YearMonth] = None,
    ) -> LedgerWatch:
        """
        Keep ``callback`` supplied with an up-to-date LedgerView.

        Call ``close()`` on the returned handle to stop.
        """
        return LedgerWatch(self._storage, callback, month=month)

    async def current_view(self, month: Optional[YearMonth] = None) -> LedgerView:
        """One-off LedgerView without subscribing."""
        return build_ledger_view(
            profile=await self._storage.get_profile(),
            transactions=await self._storage.list_transactions(),
            cards=await self._storage.list_cards(),
            wishlist=await self._storage.list_wishlist(),
            acquisitions=await self._storage.list_acquisitions(),
            month=month or YearMonth.from_date(date.today()),
            quantum=self._settings.currency_quantum,
        )

    async def build_report(
        self,
        month: Optional[YearMonth] = None,
        months_back: int = 6,
    ) -> MonthlyReport:
        return await ReportBuilder(self._storage).build(month, months_back)


def create_app_components(
    backend: Optional[str] = None,
    user_id: str = "local",
) -> LedgerSession:
    """
    Factory function to create a ready-to-use session.

    Args:
        backend: "memory", "local" or "sheets". Defaults to the
                configured storage backend.
        user_id: Owner of the data (the account id for Sheets)

    Returns:
        LedgerSession wired to the chosen storage and audit log
    """
    backend = backend or get_settings().app.storage_backend

    if backend == "sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(user_id, sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client), user_id=user_id)
            return LedgerSession(storage, audit_logger)
        except Exception as e:
            # Sheets not configured - continue offline
            logger.warning("sheets_not_configured", error=str(e))
            backend = "local"

    if backend == "local":
        storage = LocalJsonLedgerStorage(user_id)
        return LedgerSession(storage, AuditLogger(user_id=user_id))  # Local-only logging

    if backend == "memory":
        storage = InMemoryLedgerStorage(user_id)
        return LedgerSession(storage, AuditLogger(InMemoryAuditStorage(), user_id=user_id))

    raise ValueError(f"Unknown storage backend: {backend}")
