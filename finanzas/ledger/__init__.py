"""Ledger aggregation package."""

from finanzas.ledger.aggregator import (
    DEFAULT_QUANTUM,
    card_due_by_month,
    card_month_status,
    card_outstanding,
    category_breakdown,
    compute_card_due_for_month,
    compute_summary,
    installment_schedule,
    is_month_paid,
    link_card_references,
    mark_month_paid,
    monthly_totals,
    paid_month_key,
    savings_available,
    split_installments,
    wishlist_progress,
)

__all__ = [
    "DEFAULT_QUANTUM",
    "card_due_by_month",
    "card_month_status",
    "card_outstanding",
    "category_breakdown",
    "compute_card_due_for_month",
    "compute_summary",
    "installment_schedule",
    "is_month_paid",
    "link_card_references",
    "mark_month_paid",
    "monthly_totals",
    "paid_month_key",
    "savings_available",
    "split_installments",
    "wishlist_progress",
]
