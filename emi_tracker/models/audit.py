"""
Audit Models for the EMI Tracker

Every user action that changes the ledger is logged for audit purposes.
This provides:
1. Traceability of every entry created or removed
2. Debugging information when a settlement fails
3. A way to reconstruct what the user did and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_RENAMED = "account_renamed"
    ACCOUNT_DELETED = "account_deleted"

    # Installment flow
    PLAN_GENERATED = "plan_generated"
    CASH_IN_RECORDED = "cash_in_recorded"
    SETTLEMENT_RECORDED = "settlement_recorded"

    # Entry maintenance
    ENTRY_REPLACED = "entry_replaced"
    ENTRY_DELETED = "entry_deleted"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    PLANNING_REJECTED = "planning_rejected"
    SAVE_FAILED = "save_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g. 'entry', 'account', 'plan')"
    )
    entity_id: Optional[UUID] = None

    # Ties together all events of one user action
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the audit worksheet.

        Columns:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.cash_in_recorded(entry_id, "Car loan", ...)
        event = AuditEventBuilder.settlement_recorded("Car loan", entry_ids, ...)
    """

    @staticmethod
    def account_created(
        account_id: UUID,
        name: str,
        is_installment: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account created: {name}",
            details={"name": name, "is_installment": is_installment},
            is_user_action=True,
        )

    @staticmethod
    def account_renamed(
        account_id: UUID,
        old_name: str,
        new_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_RENAMED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account renamed: {old_name} -> {new_name}",
            details={"old_name": old_name, "new_name": new_name},
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(
        account_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account deleted: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def plan_generated(
        account: str,
        frequency: str,
        open_slots: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_GENERATED,
            severity=AuditSeverity.DEBUG,
            entity_type="plan",
            correlation_id=correlation_id,
            description=f"Installment plan generated for {account}",
            details={
                "account": account,
                "frequency": frequency,
                "open_slots": open_slots,
            },
        )

    @staticmethod
    def cash_in_recorded(
        entry_id: UUID,
        account: str,
        amount: Decimal,
        period_count: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CASH_IN_RECORDED,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Cash in recorded on {account}: {amount}",
            details={
                "account": account,
                "amount": str(amount),
                "period_count": period_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def settlement_recorded(
        account: str,
        entry_ids: list[UUID],
        dates: list[str],
        total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"{len(entry_ids)} installment(s) settled on {account}",
            details={
                "account": account,
                "entry_ids": [str(i) for i in entry_ids],
                "dates": dates,
                "total": str(total),
            },
            is_user_action=True,
        )

    @staticmethod
    def entry_replaced(
        entry_id: UUID,
        account: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_REPLACED,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Entry replaced on {account}",
            details={"account": account},
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(
        entry_id: UUID,
        account: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Entry deleted from {account}",
            details={"account": account},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        account: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Validation failed for {account} with {len(issues)} issues",
            details={"account": account, "issues": issues},
        )

    @staticmethod
    def planning_rejected(
        account: str,
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLANNING_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Planning rejected for {account}: {error_type}",
            error_message=error_message,
            details={"account": account, "error_type": error_type},
        )

    @staticmethod
    def save_failed(
        account: str,
        entry_count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Failed to save {entry_count} entr{'y' if entry_count == 1 else 'ies'} on {account}",
            error_message=error_message,
            details={"account": account, "entry_count": entry_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
