"""
Tests for the ledger aggregator.

Everything here is pure computation: no storage, no settings.
"""

import pytest
from datetime import date
from decimal import Decimal

from finanzas.ledger import (
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
from finanzas.models.ledger import (
    Acquisition,
    Card,
    Transaction,
    TransactionType,
    WishlistItem,
    YearMonth,
)


def card_purchase(card: Card, amount: str, installments=None, first_payment=None, on=date(2025, 1, 2)):
    return Transaction(
        type=TransactionType.EXPENSE,
        category=card.name,
        amount=Decimal(amount),
        date=on,
        card_id=card.id,
        installments=installments,
        first_payment_date=first_payment,
    )


class TestComputeSummary:
    """Tests for compute_summary."""

    def test_income_expense_saving(self, make_txn):
        """Test income 1000, expense 400, saving 100 leaves 500."""
        summary = compute_summary([
            make_txn(TransactionType.INCOME, "1000", "Salario"),
            make_txn(TransactionType.EXPENSE, "400"),
            make_txn(TransactionType.SAVING, "100", "Ahorro"),
        ])
        assert summary.total_income == Decimal("1000")
        assert summary.total_expense == Decimal("400")
        assert summary.total_saving == Decimal("100")
        assert summary.balance == Decimal("500")

    def test_empty_ledger_is_all_zero(self):
        summary = compute_summary([])
        assert summary.total_income == 0
        assert summary.total_expense == 0
        assert summary.total_saving == 0
        assert summary.balance == 0

    def test_installment_purchase_counts_full_amount(self, visa):
        """Cash committed, not cash-flow timing."""
        summary = compute_summary([
            card_purchase(visa, "300000", installments=3, first_payment=date(2025, 1, 5)),
        ])
        assert summary.total_expense == Decimal("300000")

    def test_balance_can_go_negative(self, make_txn):
        summary = compute_summary([
            make_txn(TransactionType.INCOME, "100", "Salario"),
            make_txn(TransactionType.EXPENSE, "250"),
        ])
        assert summary.balance == Decimal("-150")

    def test_balance_identity_holds(self, make_txn):
        txns = [
            make_txn(TransactionType.INCOME, "1234.56", "Salario"),
            make_txn(TransactionType.INCOME, "10", "Ventas"),
            make_txn(TransactionType.EXPENSE, "99.99"),
            make_txn(TransactionType.SAVING, "0.01", "Ahorro"),
        ]
        summary = compute_summary(txns)
        assert summary.balance == summary.total_income - summary.total_expense - summary.total_saving
        assert min(summary.total_income, summary.total_expense, summary.total_saving) >= 0


class TestCategoryBreakdown:
    """Tests for category_breakdown."""

    def test_same_category_is_summed(self, make_txn):
        breakdown = category_breakdown(
            [make_txn(amount="18000", category="Ocio"), make_txn(amount="45000", category="Ocio")],
            TransactionType.EXPENSE,
        )
        assert breakdown == {"Ocio": Decimal("63000")}

    def test_only_requested_type(self, make_txn):
        breakdown = category_breakdown(
            [
                make_txn(TransactionType.INCOME, "500", "Salario"),
                make_txn(TransactionType.EXPENSE, "20", "Salud"),
            ],
            TransactionType.INCOME,
        )
        assert breakdown == {"Salario": Decimal("500")}

    def test_category_names_are_case_sensitive(self, make_txn):
        breakdown = category_breakdown(
            [make_txn(amount="1", category="ocio"), make_txn(amount="2", category="Ocio")],
            TransactionType.EXPENSE,
        )
        assert breakdown == {"ocio": Decimal("1"), "Ocio": Decimal("2")}


class TestSplitInstallments:
    """Tests for the rounding policy of installment splits."""

    def test_even_split(self):
        assert split_installments(Decimal("300000"), 3) == [Decimal("100000")] * 3

    def test_remainder_goes_to_last_installment(self):
        assert split_installments(Decimal("100"), 3) == [
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        ]

    def test_whole_unit_quantum(self):
        parts = split_installments(Decimal("100000"), 3, quantum=Decimal("1"))
        assert parts == [Decimal("33333"), Decimal("33333"), Decimal("33334")]

    def test_single_installment_is_whole_amount(self):
        assert split_installments(Decimal("10.55"), 1) == [Decimal("10.55")]

    def test_rejects_zero_installments(self):
        with pytest.raises(ValueError):
            split_installments(Decimal("10"), 0)

    def test_amount_beyond_context_precision(self, visa):
        parts = split_installments(Decimal("1E+27"), 2)
        assert parts == [Decimal("5E+26"), Decimal("5E+26")]

        txn = card_purchase(visa, "1E+27", installments=2)
        assert compute_card_due_for_month(visa, [txn], YearMonth(2025, 1)) == Decimal("5E+26")

    @pytest.mark.parametrize("amount,installments", [
        ("329990", 3),
        ("450000", 6),
        ("890000", 12),
        ("0.05", 7),
        ("1", 48),
    ])
    def test_parts_sum_to_amount(self, amount, installments):
        parts = split_installments(Decimal(amount), installments)
        assert sum(parts) == Decimal(amount)
        # all but the last part are identical
        assert len(set(parts[:-1])) <= 1


class TestCardDueForMonth:
    """Tests for compute_card_due_for_month and the installment calendar."""

    def test_three_installments_from_january(self, visa):
        """300000 in 3 installments starting 2025-01: 100000 per month."""
        txns = [card_purchase(visa, "300000", installments=3, first_payment=date(2025, 1, 5))]

        for month in (YearMonth(2025, 1), YearMonth(2025, 2), YearMonth(2025, 3)):
            assert compute_card_due_for_month(visa, txns, month) == Decimal("100000")
        assert compute_card_due_for_month(visa, txns, YearMonth(2024, 12)) == 0
        assert compute_card_due_for_month(visa, txns, YearMonth(2025, 4)) == 0

    def test_single_installment_without_first_payment_uses_date(self, visa):
        txns = [card_purchase(visa, "5000", installments=1, on=date(2025, 3, 10))]

        assert compute_card_due_for_month(visa, txns, YearMonth(2025, 3)) == Decimal("5000")
        assert compute_card_due_for_month(visa, txns, YearMonth(2025, 2)) == 0
        assert compute_card_due_for_month(visa, txns, YearMonth(2025, 4)) == 0

    def test_missing_installments_means_one(self, visa):
        txns = [card_purchase(visa, "7000", first_payment=date(2025, 6, 1))]
        assert card_due_by_month(visa, txns) == {YearMonth(2025, 6): Decimal("7000")}

    def test_schedule_rolls_over_the_year(self, visa):
        txn = card_purchase(visa, "400", installments=4, first_payment=date(2024, 11, 5))
        months = [due.month for due in installment_schedule(txn)]
        assert months == [
            YearMonth(2024, 11),
            YearMonth(2024, 12),
            YearMonth(2025, 1),
            YearMonth(2025, 2),
        ]
        assert [due.number for due in installment_schedule(txn)] == [1, 2, 3, 4]

    def test_dues_sum_to_amount(self, visa):
        txn = card_purchase(visa, "100", installments=3, first_payment=date(2025, 11, 1))
        first = YearMonth(2025, 11)
        total = sum(
            compute_card_due_for_month(visa, [txn], first.add_months(k)) for k in range(3)
        )
        assert total == Decimal("100")

    def test_purchases_add_up_within_a_month(self, visa):
        txns = [
            card_purchase(visa, "300", installments=3, first_payment=date(2025, 1, 5)),
            card_purchase(visa, "50", installments=1, first_payment=date(2025, 2, 5)),
        ]
        assert compute_card_due_for_month(visa, txns, YearMonth(2025, 2)) == Decimal("150")

    def test_other_cards_do_not_count(self, visa, mastercard):
        txns = [
            card_purchase(visa, "300", installments=3, first_payment=date(2025, 1, 5)),
            card_purchase(mastercard, "90", installments=1, first_payment=date(2025, 1, 5)),
        ]
        assert compute_card_due_for_month(visa, txns, YearMonth(2025, 1)) == Decimal("100")
        assert compute_card_due_for_month(mastercard, txns, YearMonth(2025, 1)) == Decimal("90")

    def test_unknown_card_reference_is_ignored(self, visa, make_txn):
        ghost = make_txn(amount="999", category="Old Card", card_id="deleted-card", installments=2)
        assert compute_card_due_for_month(visa, [ghost], YearMonth(2025, 1)) == 0
        assert card_due_by_month(visa, [ghost]) == {}

    def test_name_match_alone_does_not_link(self, visa, make_txn):
        """Only card_id links a purchase to a card."""
        unlinked = make_txn(amount="500", category=visa.name)
        assert compute_card_due_for_month(visa, [unlinked], YearMonth(2025, 1)) == 0

    def test_card_due_by_month_is_ordered(self, visa):
        txns = [
            card_purchase(visa, "20", installments=2, first_payment=date(2025, 5, 1)),
            card_purchase(visa, "10", installments=1, first_payment=date(2025, 1, 1)),
        ]
        assert list(card_due_by_month(visa, txns)) == [
            YearMonth(2025, 1),
            YearMonth(2025, 5),
            YearMonth(2025, 6),
        ]

    def test_outstanding_counts_from_month_on(self, visa):
        txns = [card_purchase(visa, "300", installments=3, first_payment=date(2025, 1, 5))]
        assert card_outstanding(visa, txns, YearMonth(2025, 1)) == Decimal("300")
        assert card_outstanding(visa, txns, YearMonth(2025, 3)) == Decimal("100")
        assert card_outstanding(visa, txns, YearMonth(2025, 4)) == 0

    def test_idempotent_and_inputs_untouched(self, visa):
        txns = [card_purchase(visa, "100", installments=3, first_payment=date(2025, 1, 5))]
        snapshot = [t.model_copy() for t in txns]

        first = compute_card_due_for_month(visa, txns, YearMonth(2025, 3))
        second = compute_card_due_for_month(visa, txns, YearMonth(2025, 3))

        assert first == second == Decimal("33.34")
        assert txns == snapshot
        assert compute_summary(txns) == compute_summary(txns)


class TestPaidMonths:
    """Tests for the paid-month overlay."""

    def test_missing_key_is_unpaid(self, visa):
        assert is_month_paid({}, visa, YearMonth(2025, 1)) is False

    def test_mark_returns_new_mapping(self, visa):
        original: dict[str, bool] = {}
        updated = mark_month_paid(original, visa, YearMonth(2025, 1))

        assert original == {}
        assert updated == {"card-visa:2025-01": True}
        assert is_month_paid(updated, visa, YearMonth(2025, 1)) is True
        assert is_month_paid(updated, visa, YearMonth(2025, 2)) is False

    def test_mark_unpaid_drops_key(self, visa):
        paid = {paid_month_key(visa, YearMonth(2025, 1)): True, "other:2025-01": True}
        updated = mark_month_paid(paid, visa, YearMonth(2025, 1), paid=False)
        assert updated == {"other:2025-01": True}

    def test_paid_flag_does_not_change_due(self, visa):
        txns = [card_purchase(visa, "300", installments=3, first_payment=date(2025, 1, 5))]
        paid = mark_month_paid({}, visa, YearMonth(2025, 1))

        status = card_month_status(visa, txns, paid, YearMonth(2025, 1))
        assert status.paid is True
        assert status.due == Decimal("100")

    def test_card_month_status_credit(self, visa):
        txns = [card_purchase(visa, "300000", installments=3, first_payment=date(2025, 1, 5))]
        status = card_month_status(visa, txns, {}, YearMonth(2025, 2))

        assert status.card_name == "Visa"
        assert status.used == Decimal("200000")
        assert status.available == Decimal("800000")
        assert status.paid is False


class TestMonthlyTotals:
    def test_groups_by_transaction_date(self, make_txn):
        txns = [
            make_txn(TransactionType.INCOME, "100", "Salario", on=date(2025, 1, 1)),
            make_txn(TransactionType.EXPENSE, "40", on=date(2025, 2, 3)),
            make_txn(TransactionType.EXPENSE, "60", on=date(2024, 12, 31)),
        ]
        totals = monthly_totals(txns, [YearMonth(2025, 1), YearMonth(2025, 2)])

        assert list(totals) == [YearMonth(2025, 1), YearMonth(2025, 2)]
        assert totals[YearMonth(2025, 1)].balance == Decimal("100")
        assert totals[YearMonth(2025, 2)].total_expense == Decimal("40")


class TestSavings:
    def test_available_is_saved_minus_acquired(self, make_txn):
        txns = [
            make_txn(TransactionType.SAVING, "500", "Ahorro"),
            make_txn(TransactionType.EXPENSE, "900"),
        ]
        acquisitions = [Acquisition(name="Bici", price=Decimal("120"), date=date(2025, 1, 5))]
        assert savings_available(txns, acquisitions) == Decimal("380")

    def test_wishlist_progress(self):
        item = WishlistItem(name="PS5", price=Decimal("200"))
        assert wishlist_progress(item, Decimal("50")) == Decimal("25.0")
        assert wishlist_progress(item, Decimal("500")) == Decimal("100")
        assert wishlist_progress(item, Decimal("-10")) == 0

    def test_free_item_is_complete(self):
        assert wishlist_progress(WishlistItem(name="Gift", price=Decimal("0")), Decimal("0")) == 100


class TestLinkCardReferences:
    """Tests for linking name-only card purchases."""

    def test_links_by_card_name(self, visa, make_txn):
        legacy = make_txn(category="Visa", installments=2, first_payment_date=date(2025, 1, 5))
        [linked] = link_card_references([legacy], [visa])

        assert linked.card_id == visa.id
        assert legacy.card_id is None
        assert compute_card_due_for_month(visa, [linked], YearMonth(2025, 2)) == Decimal("500")

    def test_existing_reference_is_kept(self, visa, make_txn):
        txn = make_txn(category="Visa", card_id="another-card")
        [linked] = link_card_references([txn], [visa])
        assert linked.card_id == "another-card"

    def test_ambiguous_names_link_to_nothing(self, make_txn):
        cards = [Card(id="a", name="Visa"), Card(id="b", name="Visa")]
        [linked] = link_card_references([make_txn(category="Visa")], cards)
        assert linked.card_id is None

    def test_regular_categories_untouched(self, visa, make_txn):
        txn = make_txn(category="Ocio")
        assert link_card_references([txn], [visa]) == [txn]
