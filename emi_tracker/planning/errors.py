"""
Planning Errors

All of these are local validation failures. They are raised immediately
and never retried. The caller surfaces them to the user and aborts any
persistence it was about to do.
"""

from datetime import date
from typing import Iterable


class PlanningError(ValueError):
    """Base exception for installment planning."""
    pass


class InvalidAmount(PlanningError):
    """Non-positive, non-numeric or missing amount."""
    pass


class InvalidPeriodCount(PlanningError):
    """Non-positive installment period count."""
    pass


class InvalidFrequency(PlanningError):
    """Frequency outside daily/weekly/monthly."""
    pass


class DescriptionTooLong(PlanningError):
    """The description plus its EMI annotation exceeds the stored limit."""

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(
            f"Description is too long ({length} characters, limit {limit}); "
            "please shorten it"
        )


class EmptySelection(PlanningError):
    """A cash-out plan was requested with no selected slots."""
    pass


class UnknownAccount(PlanningError):
    """The account named in a planning request does not exist."""

    def __init__(self, account: str):
        self.account = account
        super().__init__(f"Account not found: {account}")


class NotInstallmentAccount(PlanningError):
    """Installment planning was requested for a regular account."""

    def __init__(self, account: str):
        self.account = account
        super().__init__(f"Account '{account}' is not an installment account")


class AlreadySettled(PlanningError):
    """One or more selected slots already have a settlement recorded."""

    def __init__(self, account: str, dates: Iterable[date]):
        self.account = account
        self.dates = sorted(dates)
        listed = ", ".join(d.isoformat() for d in self.dates)
        super().__init__(f"Already settled for '{account}': {listed}")


class AccountNotEmpty(PlanningError):
    """An account cannot be deleted while entries are recorded against it."""

    def __init__(self, account: str, entry_count: int):
        self.account = account
        self.entry_count = entry_count
        super().__init__(
            f"Cannot delete '{account}': it still has {entry_count} entries"
        )


class DraftsRejected(PlanningError):
    """Drafts failed validation and were not persisted."""

    def __init__(self, account: str, messages: Iterable[str]):
        self.account = account
        self.messages = list(messages)
        super().__init__(
            f"Entries for '{account}' were rejected: " + "; ".join(self.messages)
        )
