"""
Data Models Package

This package contains all Pydantic models used in the EMI Tracker.
All data flowing through the system must conform to these schemas.
"""

from emi_tracker.models.ledger import (
    Account,
    AccountCategory,
    AccountTotals,
    EntryDraft,
    EntryKind,
    Frequency,
    InstallmentPlan,
    InstallmentTerms,
    LedgerEntry,
    ScheduleSlot,
)
from emi_tracker.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from emi_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountCategory",
    "AccountTotals",
    "EntryDraft",
    "EntryKind",
    "Frequency",
    "InstallmentPlan",
    "InstallmentTerms",
    "LedgerEntry",
    "ScheduleSlot",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
