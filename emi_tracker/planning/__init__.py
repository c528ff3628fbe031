"""
Installment Planning Package

The computational core: schedule generation and the installment planner.
Pure functions over in-memory entries; persistence happens elsewhere.
"""

from emi_tracker.planning.errors import (
    AccountNotEmpty,
    AlreadySettled,
    DescriptionTooLong,
    DraftsRejected,
    EmptySelection,
    InvalidAmount,
    InvalidFrequency,
    InvalidPeriodCount,
    NotInstallmentAccount,
    PlanningError,
    UnknownAccount,
)
from emi_tracker.planning.schedule import (
    ScheduleGenerator,
    entries_for,
    latest_cash_in,
    parse_frequency,
)
from emi_tracker.planning.planner import InstallmentPlanner

__all__ = [
    # Core
    "InstallmentPlanner",
    "ScheduleGenerator",
    # Helpers
    "entries_for",
    "latest_cash_in",
    "parse_frequency",
    # Errors
    "AccountNotEmpty",
    "AlreadySettled",
    "DescriptionTooLong",
    "DraftsRejected",
    "EmptySelection",
    "InvalidAmount",
    "InvalidFrequency",
    "InvalidPeriodCount",
    "NotInstallmentAccount",
    "PlanningError",
    "UnknownAccount",
]
