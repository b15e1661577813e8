"""
Audit Logger

DESIGN DECISION: Every change to a user's ledger is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. User can see history of their changes

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from finanzas.models.audit import AuditEvent, AuditEventBuilder
from finanzas.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        user_id: Optional[str] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            user_id: Owner stamped on every event logged through the helpers
        """
        self._storage = storage
        self._user_id = user_id
        self._logger = structlog.get_logger("finanzas.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_record_added(
        self,
        entity_type: str,
        entity_id: str,
        summary: str,
        correlation_id: UUID,
    ) -> None:
        """Log a new transaction, card, wishlist item or acquisition."""
        event = AuditEventBuilder.record_added(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=self._user_id,
            summary=summary,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_record_deleted(
        self,
        entity_type: str,
        entity_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.record_deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=self._user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        transaction_id: str,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            user_id=self._user_id,
            changes=changes,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_month_paid_changed(
        self,
        card_id: str,
        month: str,
        paid: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.month_paid_changed(
            card_id=card_id,
            month=month,
            paid=paid,
            user_id=self._user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_profile_created(self, seeded: bool, correlation_id: UUID) -> None:
        event = AuditEventBuilder.profile_created(
            user_id=self._user_id,
            seeded=seeded,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_profile_updated(self, fields: list[str], correlation_id: UUID) -> None:
        event = AuditEventBuilder.profile_updated(
            user_id=self._user_id,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_categories_updated(
        self,
        income_count: int,
        expense_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.categories_updated(
            user_id=self._user_id,
            income_count=income_count,
            expense_count=expense_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_data_reset(self, correlation_id: UUID) -> None:
        event = AuditEventBuilder.data_reset(
            user_id=self._user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log a form rejected at the input boundary."""
        event = AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            user_id=self._user_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            user_id=self._user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            user_id=self._user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding a purchase).
    Pass it through all subsequent operations.
    """
    return uuid4()
