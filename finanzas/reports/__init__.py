"""Monthly reports built on the ledger aggregator."""

from finanzas.models.ledger import MonthlyReport, TrendPoint
from finanzas.reports.builder import ReportBuilder

__all__ = ["MonthlyReport", "ReportBuilder", "TrendPoint"]
