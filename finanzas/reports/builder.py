"""
Report Builder

DESIGN DECISION: Reports are DETERMINISTIC.
Every figure comes from the ledger aggregator applied to stored data;
the builder only picks the slices (which month, how many trend months).

A report never estimates: a month without transactions shows zeros.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from finanzas.config import get_settings
from finanzas.ledger.aggregator import (
    card_month_status,
    category_breakdown,
    compute_summary,
    monthly_totals,
)
from finanzas.models.ledger import (
    MonthlyReport,
    TransactionType,
    TrendPoint,
    UserProfile,
    YearMonth,
)
from finanzas.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


class ReportBuilder:
    """
    Builds monthly reports from one user's storage.

    GUARANTEES:
    - Only uses real data from storage
    - Card figures use the same installment math as the card tracker
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        quantum: Optional[Decimal] = None,
    ):
        app_settings = get_settings().app
        self._storage = storage
        self._quantum = quantum or app_settings.currency_quantum
        self._currency_code = app_settings.currency_code

    async def build(
        self,
        month: Optional[YearMonth] = None,
        months_back: int = 6,
    ) -> MonthlyReport:
        """
        Build the report for ``month`` (defaults to the current month).

        Args:
            month: Reported month
            months_back: Length of the trend, ending at ``month``
        """
        if months_back < 1:
            raise ValueError(f"months_back must be >= 1, got {months_back}")
        month = month or YearMonth.from_date(date.today())

        profile = await self._storage.get_profile() or UserProfile()
        transactions = await self._storage.list_transactions()
        cards = await self._storage.list_cards()

        in_month = [t for t in transactions if YearMonth.from_date(t.date) == month]
        trend_months = [month.add_months(-offset) for offset in range(months_back - 1, -1, -1)]

        report = MonthlyReport(
            owner_name=profile.name,
            currency_code=self._currency_code,
            month=month,
            month_summary=compute_summary(in_month),
            overall_summary=compute_summary(transactions),
            expense_breakdown=category_breakdown(in_month, TransactionType.EXPENSE),
            income_breakdown=category_breakdown(in_month, TransactionType.INCOME),
            card_statuses=[
                card_month_status(card, transactions, profile.paid_months, month, self._quantum)
                for card in cards
            ],
            trend=[
                TrendPoint(month=m, summary=summary)
                for m, summary in monthly_totals(transactions, trend_months).items()
            ],
        )

        logger.info(
            "report_built",
            user_id=self._storage.user_id,
            month=str(month),
            transactions=len(in_month),
            cards=len(cards),
        )
        return report
