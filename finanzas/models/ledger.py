"""
Core Data Models for Finanzas

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is always Decimal. Floats never reach the ledger,
so sums and installment splits are exact.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


def new_id() -> str:
    """Generate a storage-friendly record identifier."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Kind of money movement.

    Each transaction contributes to exactly one of the summary totals.
    """
    INCOME = "income"
    EXPENSE = "expense"
    SAVING = "saving"


# =============================================================================
# CALENDAR MONTH
# =============================================================================

class YearMonth(NamedTuple):
    """A calendar month, e.g. YearMonth(2025, 1) for January 2025."""

    year: int
    month: int

    @classmethod
    def from_date(cls, d: date) -> "YearMonth":
        return cls(d.year, d.month)

    @classmethod
    def parse(cls, value: str) -> "YearMonth":
        """Parse a ``YYYY-MM`` string."""
        try:
            year_str, month_str = value.strip().split("-")
            year, month = int(year_str), int(month_str)
        except (AttributeError, ValueError) as e:
            raise ValueError(f"Invalid month: {value!r} (expected YYYY-MM)") from e
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {value!r} (month must be 1-12)")
        return cls(year, month)

    def add_months(self, n: int) -> "YearMonth":
        """Shift by n whole months, carrying into the year."""
        index = self.year * 12 + (self.month - 1) + n
        return YearMonth(index // 12, index % 12 + 1)

    def months_until(self, other: "YearMonth") -> int:
        """Number of months from self to other (negative if other is earlier)."""
        return (other.year - self.year) * 12 + (other.month - self.month)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Transaction(BaseModel):
    """
    A single income, expense or saving record.

    Card purchases carry ``card_id``; purchases paid over several months
    also carry ``installments`` and ``first_payment_date``.

    Only description, amount and date may change after creation
    (see ``with_edits``).
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    type: TransactionType
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name (for card purchases, the card's name)"
    )
    description: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., ge=0)
    date: date

    card_id: Optional[str] = Field(
        default=None,
        description="Explicit reference to the card that paid this purchase"
    )
    installments: Optional[int] = Field(default=None, ge=1)
    first_payment_date: Optional[date] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_card_purchase(self) -> bool:
        return self.card_id is not None

    @property
    def installment_count(self) -> int:
        return self.installments or 1

    @property
    def first_due_month(self) -> YearMonth:
        """Month of the first installment (falls back to the purchase date)."""
        return YearMonth.from_date(self.first_payment_date or self.date)

    def with_edits(
        self,
        description: Optional[str] = None,
        amount: Optional[Decimal] = None,
        date: Optional[date] = None,
    ) -> "Transaction":
        """Return a re-validated copy with the editable fields replaced."""
        data = self.model_dump()
        if description is not None:
            data["description"] = description
        if amount is not None:
            data["amount"] = amount
        if date is not None:
            data["date"] = date
        return Transaction.model_validate(data)


class Card(BaseModel):
    """A credit card and its credit limit."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    limit: Decimal = Field(default=Decimal("0"), ge=0)


class WishlistItem(BaseModel):
    """A desired future purchase."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    link: str = Field(default="", max_length=500)
    price: Decimal = Field(..., ge=0)


class Acquisition(BaseModel):
    """A wishlist item that has actually been bought."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    link: str = Field(default="", max_length=500)
    price: Decimal = Field(..., ge=0)
    date: date
    wishlist_item_id: Optional[str] = None

    @classmethod
    def from_wishlist_item(cls, item: WishlistItem, bought_on: date) -> "Acquisition":
        return cls(
            name=item.name,
            link=item.link,
            price=item.price,
            date=bought_on,
            wishlist_item_id=item.id,
        )


class Categories(BaseModel):
    """User-defined category names, in display order."""
    model_config = ConfigDict(str_strip_whitespace=True)

    income: list[str] = Field(..., min_length=1)
    expense: list[str] = Field(..., min_length=1)

    @field_validator("income", "expense")
    @classmethod
    def no_blank_names(cls, v: list[str]) -> list[str]:
        names = [name.strip() for name in v]
        if any(not name for name in names):
            raise ValueError("Category names cannot be empty")
        return names

    def for_type(self, transaction_type: TransactionType) -> list[str]:
        if transaction_type == TransactionType.INCOME:
            return self.income
        if transaction_type == TransactionType.EXPENSE:
            return self.expense
        # savings are free-form
        return []


DEFAULT_CATEGORIES = Categories(
    income=["Salario", "Ventas", "Freelance"],
    expense=[
        "Alimentación",
        "Transporte",
        "Servicios",
        "Ocio",
        "Salud",
        "Educación",
        "Pago Tarjeta",
    ],
)


class UserProfile(BaseModel):
    """
    Per-user profile document.

    Holds descriptive fields plus the two pieces of configuration that
    live beside them in storage: categories and paid months.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(default="Usuario", max_length=100)
    phone: str = Field(default="", max_length=30)
    email: str = Field(default="", max_length=200)
    country_code: str = Field(default="+56", max_length=6)
    categories: Categories = Field(
        default_factory=lambda: DEFAULT_CATEGORIES.model_copy(deep=True)
    )
    paid_months: dict[str, bool] = Field(
        default_factory=dict,
        description="'<card_id>:<YYYY-MM>' -> paid acknowledgement"
    )


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class LedgerSummary(BaseModel):
    """Cash committed per transaction type, and what is left."""
    model_config = ConfigDict(frozen=True)

    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    total_saving: Decimal = Decimal("0")

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense - self.total_saving


class InstallmentDue(BaseModel):
    """One installment of a card purchase."""
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    number: int = Field(..., ge=1)
    of: int = Field(..., ge=1)
    month: YearMonth
    amount: Decimal


class CardMonthStatus(BaseModel):
    """Statement view of one card for one month."""
    model_config = ConfigDict(frozen=True)

    card_id: str
    card_name: str
    month: YearMonth
    due: Decimal
    paid: bool
    limit: Decimal
    used: Decimal

    @computed_field
    @property
    def available(self) -> Decimal:
        return self.limit - self.used


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'unknown_card')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (logic checks)
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    # Warnings don't block but should be shown
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")


# =============================================================================
# REPORTS
# =============================================================================

class TrendPoint(BaseModel):
    """Totals of one month in a report trend."""
    model_config = ConfigDict(frozen=True)

    month: YearMonth
    summary: LedgerSummary


class MonthlyReport(BaseModel):
    """
    Printable monthly report.

    Breakdowns only cover transactions dated in ``month``; the overall
    summary covers the whole ledger.
    """
    model_config = ConfigDict(frozen=True)

    owner_name: str
    currency_code: str
    month: YearMonth
    generated_at: datetime = Field(default_factory=datetime.utcnow)

    month_summary: LedgerSummary
    overall_summary: LedgerSummary
    expense_breakdown: dict[str, Decimal] = Field(default_factory=dict)
    income_breakdown: dict[str, Decimal] = Field(default_factory=dict)
    card_statuses: list[CardMonthStatus] = Field(default_factory=list)
    trend: list[TrendPoint] = Field(default_factory=list)

    @property
    def total_card_due(self) -> Decimal:
        return sum((status.due for status in self.card_statuses), Decimal("0"))

    def to_rows(self) -> list[list[str]]:
        """Flatten into ``[section, label, value]`` rows for CSV/Sheets export."""
        rows = [
            ["report", "owner", self.owner_name],
            ["report", "month", str(self.month)],
            ["report", "currency", self.currency_code],
        ]
        for label, value in (
            ("income", self.month_summary.total_income),
            ("expense", self.month_summary.total_expense),
            ("saving", self.month_summary.total_saving),
            ("balance", self.month_summary.balance),
        ):
            rows.append(["month_summary", label, str(value)])
        rows.append(["overall_summary", "balance", str(self.overall_summary.balance)])

        for category, amount in sorted(self.expense_breakdown.items(), key=lambda kv: -kv[1]):
            rows.append(["expense_by_category", category, str(amount)])
        for category, amount in sorted(self.income_breakdown.items(), key=lambda kv: -kv[1]):
            rows.append(["income_by_category", category, str(amount)])

        for status in self.card_statuses:
            paid = "paid" if status.paid else "pending"
            rows.append(["card_due", status.card_name, f"{status.due} ({paid})"])

        for point in self.trend:
            rows.append(["trend", str(point.month), str(point.summary.balance)])
        return rows


class LedgerView(BaseModel):
    """
    Everything the dashboard shows, derived from one consistent set of
    snapshots. Recomputed from scratch whenever any snapshot changes.
    """
    model_config = ConfigDict(frozen=True)

    month: YearMonth
    profile: UserProfile
    transactions: list[Transaction] = Field(default_factory=list)
    cards: list[Card] = Field(default_factory=list)
    wishlist: list[WishlistItem] = Field(default_factory=list)
    acquisitions: list[Acquisition] = Field(default_factory=list)

    summary: LedgerSummary
    card_statuses: list[CardMonthStatus] = Field(default_factory=list)
    expense_breakdown: dict[str, Decimal] = Field(default_factory=dict)
    savings_available: Decimal = Decimal("0")
    wishlist_progress: dict[str, Decimal] = Field(
        default_factory=dict,
        description="wishlist item id -> percent covered by available savings"
    )
