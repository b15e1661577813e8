"""
Data Models Package

This package contains all Pydantic models used in Finanzas.
All data flowing through the system must conform to these schemas.
"""

from finanzas.models.ledger import (
    DEFAULT_CATEGORIES,
    Acquisition,
    Card,
    CardMonthStatus,
    Categories,
    InstallmentDue,
    LedgerSummary,
    LedgerView,
    MonthlyReport,
    Transaction,
    TransactionType,
    TrendPoint,
    UserProfile,
    ValidationIssue,
    ValidationResult,
    WishlistItem,
    YearMonth,
    new_id,
)
from finanzas.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_CATEGORIES",
    "Acquisition",
    "Card",
    "CardMonthStatus",
    "Categories",
    "InstallmentDue",
    "LedgerSummary",
    "LedgerView",
    "MonthlyReport",
    "Transaction",
    "TransactionType",
    "TrendPoint",
    "UserProfile",
    "ValidationIssue",
    "ValidationResult",
    "WishlistItem",
    "YearMonth",
    "new_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
