"""
Ledger Aggregator

Derives every read-only view of a user's finances from the raw records:
the running balance, per-category totals, and per-card installment dues.

DESIGN DECISION: These are plain functions over already-loaded data.
- They never mutate their inputs
- They hold no cached or incremental state
- Calling them twice with the same input gives the same output

The caller re-runs them on every storage snapshot. With personal-scale
data this is cheaper than keeping derived state in sync.

ROUNDING POLICY: An installment purchase is split into equal parts rounded
DOWN to the currency's smallest unit; whatever is left over is added to the
LAST installment. The parts always add up to the original amount exactly.
"""

from collections import defaultdict
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Iterable, Mapping, Optional

from finanzas.models.ledger import (
    Acquisition,
    Card,
    CardMonthStatus,
    InstallmentDue,
    LedgerSummary,
    Transaction,
    TransactionType,
    WishlistItem,
    YearMonth,
)


DEFAULT_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")


# =============================================================================
# SUMMARY
# =============================================================================

def compute_summary(transactions: Iterable[Transaction]) -> LedgerSummary:
    """
    Total income, expense and saving, plus the resulting balance.

    Installment purchases count with their full amount: this view is cash
    committed, not cash-flow timing.
    """
    totals = {
        TransactionType.INCOME: ZERO,
        TransactionType.EXPENSE: ZERO,
        TransactionType.SAVING: ZERO,
    }
    for txn in transactions:
        totals[txn.type] += txn.amount

    return LedgerSummary(
        total_income=totals[TransactionType.INCOME],
        total_expense=totals[TransactionType.EXPENSE],
        total_saving=totals[TransactionType.SAVING],
    )


def category_breakdown(
    transactions: Iterable[Transaction],
    transaction_type: TransactionType,
) -> dict[str, Decimal]:
    """Sum amounts of one transaction type per category (exact name match)."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in transactions:
        if txn.type == transaction_type:
            totals[txn.category] += txn.amount
    return dict(totals)


def monthly_totals(
    transactions: Iterable[Transaction],
    months: Iterable[YearMonth],
) -> dict[YearMonth, LedgerSummary]:
    """Summary per calendar month, grouped by transaction date."""
    wanted = list(months)
    by_month: dict[YearMonth, list[Transaction]] = {month: [] for month in wanted}
    for txn in transactions:
        month = YearMonth.from_date(txn.date)
        if month in by_month:
            by_month[month].append(txn)
    return {month: compute_summary(by_month[month]) for month in wanted}


# =============================================================================
# INSTALLMENTS
# =============================================================================

def split_installments(
    amount: Decimal,
    installments: int,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> list[Decimal]:
    """
    Split an amount into ``installments`` parts.

    All parts but the last are ``amount / installments`` rounded down to
    ``quantum``; the last part absorbs the remainder.
    """
    if installments < 1:
        raise ValueError(f"installments must be >= 1, got {installments}")

    with localcontext() as ctx:
        # enough digits for the amount at the quantum's scale
        ctx.prec = max(ctx.prec, amount.adjusted() - quantum.as_tuple().exponent + 2)
        base = (amount / installments).quantize(quantum, rounding=ROUND_DOWN)
        last = amount - base * (installments - 1)
    return [base] * (installments - 1) + [last]


def installment_schedule(
    transaction: Transaction,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> list[InstallmentDue]:
    """
    Every installment of a purchase with the month it falls due.

    Installment k (1-indexed) is due k-1 months after the month of the
    first payment. Without installments the whole amount is due in the
    first month; without a first payment date, the purchase date is used.
    """
    count = transaction.installment_count
    first = transaction.first_due_month
    parts = split_installments(transaction.amount, count, quantum)

    return [
        InstallmentDue(
            transaction_id=transaction.id,
            number=k,
            of=count,
            month=first.add_months(k - 1),
            amount=part,
        )
        for k, part in enumerate(parts, start=1)
    ]


def _card_transactions(card: Card, transactions: Iterable[Transaction]) -> list[Transaction]:
    # Records pointing at an unknown card simply never match any card.
    return [txn for txn in transactions if txn.card_id == card.id]


def _installment_for_month(
    transaction: Transaction,
    year_month: YearMonth,
    quantum: Decimal,
) -> Decimal:
    offset = transaction.first_due_month.months_until(year_month)
    if not 0 <= offset < transaction.installment_count:
        return ZERO
    parts = split_installments(transaction.amount, transaction.installment_count, quantum)
    return parts[offset]


def compute_card_due_for_month(
    card: Card,
    transactions: Iterable[Transaction],
    year_month: YearMonth,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> Decimal:
    """
    Amount due on a card's statement for one month.

    Adds up the installment of each purchase on this card that falls in
    ``year_month``. Months before the first or after the last installment
    contribute nothing.
    """
    return sum(
        (
            _installment_for_month(txn, year_month, quantum)
            for txn in _card_transactions(card, transactions)
        ),
        ZERO,
    )


def card_due_by_month(
    card: Card,
    transactions: Iterable[Transaction],
    quantum: Decimal = DEFAULT_QUANTUM,
) -> dict[YearMonth, Decimal]:
    """Full statement calendar of a card, ordered by month."""
    dues: dict[YearMonth, Decimal] = defaultdict(lambda: ZERO)
    for txn in _card_transactions(card, transactions):
        for due in installment_schedule(txn, quantum):
            dues[due.month] += due.amount
    return dict(sorted(dues.items()))


def card_outstanding(
    card: Card,
    transactions: Iterable[Transaction],
    from_month: YearMonth,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> Decimal:
    """Credit still in use: installments due in ``from_month`` or later."""
    return sum(
        (
            amount
            for month, amount in card_due_by_month(card, transactions, quantum).items()
            if month >= from_month
        ),
        ZERO,
    )


# =============================================================================
# PAID MONTHS
# =============================================================================

def paid_month_key(card: Card, year_month: YearMonth) -> str:
    """Storage key for a card's statement month."""
    return f"{card.id}:{year_month}"


def is_month_paid(
    paid_months: Mapping[str, bool],
    card: Card,
    year_month: YearMonth,
) -> bool:
    """Whether the user marked this card's statement for the month as paid."""
    return bool(paid_months.get(paid_month_key(card, year_month), False))


def mark_month_paid(
    paid_months: Mapping[str, bool],
    card: Card,
    year_month: YearMonth,
    paid: bool = True,
) -> dict[str, bool]:
    """
    Return a new paid-months mapping with this statement marked.

    Marking as unpaid drops the key so the mapping only holds
    acknowledgements. The input mapping is left untouched.
    """
    updated = dict(paid_months)
    key = paid_month_key(card, year_month)
    if paid:
        updated[key] = True
    else:
        updated.pop(key, None)
    return updated


def card_month_status(
    card: Card,
    transactions: Iterable[Transaction],
    paid_months: Mapping[str, bool],
    year_month: YearMonth,
    quantum: Decimal = DEFAULT_QUANTUM,
) -> CardMonthStatus:
    """Everything the card tracker shows for one card and month."""
    card_txns = _card_transactions(card, transactions)
    return CardMonthStatus(
        card_id=card.id,
        card_name=card.name,
        month=year_month,
        due=compute_card_due_for_month(card, card_txns, year_month, quantum),
        paid=is_month_paid(paid_months, card, year_month),
        limit=card.limit,
        used=card_outstanding(card, card_txns, year_month, quantum),
    )


# =============================================================================
# SAVINGS
# =============================================================================

def savings_available(
    transactions: Iterable[Transaction],
    acquisitions: Iterable[Acquisition],
) -> Decimal:
    """Money set aside as savings minus what was spent on acquisitions."""
    saved = compute_summary(transactions).total_saving
    spent = sum((acq.price for acq in acquisitions), ZERO)
    return saved - spent


def wishlist_progress(
    item: WishlistItem,
    available: Decimal,
) -> Decimal:
    """Percentage (0-100) of the item's price covered by available savings."""
    if item.price <= 0:
        return Decimal("100")
    if available <= 0:
        return ZERO
    return min(Decimal("100"), (available / item.price * 100).quantize(Decimal("0.1")))


def link_card_references(
    transactions: Iterable[Transaction],
    cards: Iterable[Card],
) -> list[Transaction]:
    """
    Fill ``card_id`` on records that only name their card through ``category``.

    Older data linked purchases to cards by name. This runs once at the
    storage boundary so nothing downstream relies on name matching.
    Records already carrying a card_id are returned unchanged.
    """
    by_name: dict[str, Optional[str]] = {}
    for card in cards:
        # Ambiguous names link to nothing.
        by_name[card.name] = None if card.name in by_name else card.id

    linked = []
    for txn in transactions:
        card_id = by_name.get(txn.category)
        if txn.card_id is None and card_id is not None:
            txn = txn.model_copy(update={"card_id": card_id})
        linked.append(txn)
    return linked
