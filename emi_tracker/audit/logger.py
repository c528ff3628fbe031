"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Complete traceability of entries and settlements
2. Debugging capability when a batch fails to save
3. A history the user can review

The audit logger:
- Is async so it sits naturally next to storage calls
- Gracefully handles storage failures (the ledger write already happened)
- Supports correlation IDs to trace related events
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from emi_tracker.config import get_settings
from emi_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from emi_tracker.services.storage import AuditStorageInterface


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route structlog through the stdlib "emi_tracker" logger.

    Args:
        level: Minimum level name; defaults to the LOG_LEVEL setting
    """
    level = (level or get_settings().app.log_level).upper()
    logging.basicConfig(format="%(message)s")
    logging.getLogger("emi_tracker").setLevel(level)

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


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("emi_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # The ledger change already happened; losing its audit row
                # must not turn it into a failure.
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_created(
        self,
        account_id: UUID,
        name: str,
        is_installment: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_created(
            account_id=account_id,
            name=name,
            is_installment=is_installment,
            correlation_id=correlation_id,
        ))

    async def log_account_renamed(
        self,
        account_id: UUID,
        old_name: str,
        new_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_renamed(
            account_id=account_id,
            old_name=old_name,
            new_name=new_name,
            correlation_id=correlation_id,
        ))

    async def log_account_deleted(
        self,
        account_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_deleted(
            account_id=account_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_plan_generated(
        self,
        account: str,
        frequency: str,
        open_slots: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.plan_generated(
            account=account,
            frequency=frequency,
            open_slots=open_slots,
            correlation_id=correlation_id,
        ))

    async def log_cash_in_recorded(
        self,
        entry_id: UUID,
        account: str,
        amount: Decimal,
        period_count: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a lump-sum cash in."""
        await self.log(AuditEventBuilder.cash_in_recorded(
            entry_id=entry_id,
            account=account,
            amount=amount,
            period_count=period_count,
            correlation_id=correlation_id,
        ))

    async def log_settlement_recorded(
        self,
        account: str,
        entry_ids: list[UUID],
        dates: list[date],
        total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a batch of installment settlements."""
        await self.log(AuditEventBuilder.settlement_recorded(
            account=account,
            entry_ids=entry_ids,
            dates=[d.isoformat() for d in dates],
            total=total,
            correlation_id=correlation_id,
        ))

    async def log_entry_replaced(
        self,
        entry_id: UUID,
        account: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entry_replaced(
            entry_id=entry_id,
            account=account,
            correlation_id=correlation_id,
        ))

    async def log_entry_deleted(
        self,
        entry_id: UUID,
        account: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entry_deleted(
            entry_id=entry_id,
            account=account,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        account: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log draft validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            account=account,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_planning_rejected(
        self,
        account: str,
        error: Exception,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a planning error before it is re-raised to the caller."""
        await self.log(AuditEventBuilder.planning_rejected(
            account=account,
            error_type=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        account: str,
        entry_count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            account=account,
            entry_count=entry_count,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g. settling installments).
    Pass it through all subsequent operations.
    """
    return uuid4()
