"""
Installment Schedule Generation

Produces the forward sequence of due dates for an installment account.

The anchor (first slot) is derived from the account's latest CASH_IN:
- monthly: first day of the month after the CASH_IN
- weekly:  CASH_IN date + 7 days
- daily:   CASH_IN date + 1 day
If the account has no CASH_IN yet, the schedule starts today.

DESIGN DECISION: "Latest CASH_IN" is computed here, explicitly, as the
entry with the greatest economic date (ties broken by creation time).
It never depends on the order the caller happened to pass entries in.
"""

from datetime import date, timedelta
from typing import Iterable, Optional, Union

from emi_tracker.models.ledger import (
    Account,
    EntryKind,
    Frequency,
    LedgerEntry,
    ScheduleSlot,
)
from emi_tracker.planning.errors import InvalidFrequency


# An account can be referenced by object (joins on id) or by display name.
AccountRef = Union[Account, str]

DEFAULT_SCHEDULE_COUNT = 12


def belongs_to(entry: LedgerEntry, account: AccountRef) -> bool:
    """Check whether an entry is recorded against the given account."""
    if isinstance(account, Account):
        return account.owns(entry)
    return entry.account == account


def entries_for(
    entries: Iterable[LedgerEntry],
    account: AccountRef,
) -> list[LedgerEntry]:
    """Restrict an entry collection to one account."""
    return [e for e in entries if belongs_to(e, account)]


def latest_cash_in(
    entries: Iterable[LedgerEntry],
    account: AccountRef,
) -> Optional[LedgerEntry]:
    """
    Find the account's most recent CASH_IN entry.

    Most recent = maximum `date`, tie-broken by maximum `created_at`.
    """
    cash_ins = [
        e for e in entries_for(entries, account)
        if e.kind == EntryKind.CASH_IN
    ]
    if not cash_ins:
        return None
    return max(cash_ins, key=lambda e: (e.date, e.created_at))


def parse_frequency(frequency: Union[Frequency, str]) -> Frequency:
    """Coerce a frequency value, rejecting anything unrecognised."""
    if isinstance(frequency, Frequency):
        return frequency
    if isinstance(frequency, str):
        try:
            return Frequency(frequency.strip().lower())
        except ValueError:
            pass
    raise InvalidFrequency(
        f"Unsupported frequency: {frequency!r}. "
        f"Expected one of: {', '.join(f.value for f in Frequency)}"
    )


def add_months(year: int, month: int, offset: int) -> date:
    """First day of the month `offset` months after (year, month)."""
    index = year * 12 + (month - 1) + offset
    return date(index // 12, index % 12 + 1, 1)


class ScheduleGenerator:
    """
    Generates installment due dates.

    Pure and stateless: every call returns a fresh list.
    """

    def generate(
        self,
        anchor_date: date,
        frequency: Union[Frequency, str],
        count: int = DEFAULT_SCHEDULE_COUNT,
    ) -> list[ScheduleSlot]:
        """
        Produce `count` slots starting at `anchor_date`.

        Args:
            anchor_date: First due date (for monthly, only year and month matter)
            frequency: daily, weekly or monthly
            count: Number of periods to produce

        Returns:
            Slots in ascending date order (empty if count <= 0)

        Raises:
            InvalidFrequency: If the frequency is not recognised
        """
        freq = parse_frequency(frequency)

        slots = []
        for i in range(max(count, 0)):
            if freq == Frequency.MONTHLY:
                due = add_months(anchor_date.year, anchor_date.month, i)
            elif freq == Frequency.WEEKLY:
                due = anchor_date + timedelta(days=7 * i)
            else:
                due = anchor_date + timedelta(days=i)
            slots.append(ScheduleSlot(due_date=due, label=self.label_for(due, freq)))

        return slots

    def anchor_for(
        self,
        entries: Iterable[LedgerEntry],
        account: AccountRef,
        frequency: Union[Frequency, str],
        today: Optional[date] = None,
    ) -> date:
        """Derive the schedule anchor from the account's latest CASH_IN."""
        freq = parse_frequency(frequency)
        cash_in = latest_cash_in(entries, account)

        if cash_in is None:
            return today or date.today()

        if freq == Frequency.MONTHLY:
            return add_months(cash_in.date.year, cash_in.date.month, 1)
        if freq == Frequency.WEEKLY:
            return cash_in.date + timedelta(days=7)
        return cash_in.date + timedelta(days=1)

    def schedule_for(
        self,
        entries: Iterable[LedgerEntry],
        account: AccountRef,
        frequency: Union[Frequency, str],
        count: int = DEFAULT_SCHEDULE_COUNT,
        today: Optional[date] = None,
    ) -> list[ScheduleSlot]:
        """Anchor on the account's history and generate the schedule."""
        entries = list(entries)
        anchor = self.anchor_for(entries, account, frequency, today=today)
        return self.generate(anchor, frequency, count)

    @staticmethod
    def label_for(due: date, frequency: Frequency) -> str:
        """Display label: "March 2025" for monthly, "Mar 5, 2025" otherwise."""
        if frequency == Frequency.MONTHLY:
            return f"{due:%B} {due.year}"
        return f"{due:%b} {due.day}, {due.year}"
