"""
Installment Planner

Turns user intent into ledger entry drafts:
- "I received a lump sum to repay over N periods"  -> one CASH_IN draft
- "I am settling periods P1..Pk"                   -> k CASH_OUT drafts

and derives the account balance the UI shows everywhere.

DESIGN DECISION: Everything here is pure computation over in-memory
entries. No storage access, no clock reads except where a caller does not
supply `today`. Persistence is the caller's job.

DESIGN DECISION: The per-period amount is stored as structured
InstallmentTerms on the CASH_IN entry. Parsing "EMI <n>" out of the
description is kept only as a fallback for entries written before the
terms existed.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union

from emi_tracker.models.ledger import (
    MAX_DESCRIPTION_LENGTH,
    Account,
    AccountTotals,
    EntryDraft,
    EntryKind,
    Frequency,
    InstallmentPlan,
    InstallmentTerms,
    LedgerEntry,
    ScheduleSlot,
)
from emi_tracker.planning.errors import (
    DescriptionTooLong,
    EmptySelection,
    InvalidAmount,
    InvalidPeriodCount,
)
from emi_tracker.planning.schedule import (
    DEFAULT_SCHEDULE_COUNT,
    AccountRef,
    ScheduleGenerator,
    entries_for,
    latest_cash_in,
    parse_frequency,
)


EMI_COUNT_PATTERN = re.compile(r"EMI\s*(\d+)", re.IGNORECASE)
EMI_PAYMENT_SUFFIX = "(EMI Payment)"


def to_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce a user-supplied amount to a positive Decimal.

    Raises:
        InvalidAmount: If the value is missing, non-numeric, non-finite or <= 0
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount(f"{field} is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"{field} must be a number, got {value!r}")
    if not amount.is_finite():
        raise InvalidAmount(f"{field} must be a finite number, got {value!r}")
    if amount <= 0:
        raise InvalidAmount(f"{field} must be greater than zero, got {amount}")
    return amount


def to_period_count(value: Any) -> int:
    """Coerce an installment count to a positive int."""
    if isinstance(value, bool):
        raise InvalidPeriodCount(f"Period count must be a whole number, got {value!r}")
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise InvalidPeriodCount(f"Period count must be a whole number, got {value!r}")
    if count != value and not isinstance(value, str):
        raise InvalidPeriodCount(f"Period count must be a whole number, got {value!r}")
    if count <= 0:
        raise InvalidPeriodCount(f"Period count must be greater than zero, got {count}")
    return count


def annotate(description: str, note: str) -> str:
    """
    Append an EMI note to a user description.

    Raises:
        DescriptionTooLong: If the annotated text would not fit in an entry
    """
    text = description.strip()
    text = f"{text} {note}" if text else note
    if len(text) > MAX_DESCRIPTION_LENGTH:
        raise DescriptionTooLong(len(text), MAX_DESCRIPTION_LENGTH)
    return text


def slot_date(slot: Union[ScheduleSlot, date]) -> date:
    """Comparable key of a selected slot: its calendar date."""
    if isinstance(slot, ScheduleSlot):
        return slot.due_date
    if isinstance(slot, date):
        # datetime is a date subclass; drop the time of day
        return date(slot.year, slot.month, slot.day)
    return date.fromisoformat(str(slot))


def account_fields(account: AccountRef) -> dict:
    """Draft fields identifying the account (name, plus id when known)."""
    if isinstance(account, Account):
        return {"account": account.name, "account_id": account.id}
    return {"account": account}


def account_name(account: AccountRef) -> str:
    return account.name if isinstance(account, Account) else account


class InstallmentPlanner:
    """
    Derives installment drafts and balances from an account's entries.
    """

    def __init__(
        self,
        generator: Optional[ScheduleGenerator] = None,
        currency_symbol: str = "",
        default_frequency: Frequency = Frequency.MONTHLY,
        default_count: int = DEFAULT_SCHEDULE_COUNT,
        default_category: str = "General",
    ):
        self._generator = generator or ScheduleGenerator()
        self._currency_symbol = currency_symbol
        self._default_frequency = parse_frequency(default_frequency)
        self._default_count = default_count
        self._default_category = default_category

    @classmethod
    def from_settings(cls) -> "InstallmentPlanner":
        """Build a planner using the configured defaults."""
        from emi_tracker.config import get_settings

        app = get_settings().app
        return cls(
            currency_symbol=app.currency_symbol,
            default_frequency=app.default_frequency,
            default_count=app.default_schedule_count,
            default_category=app.default_category,
        )

    @property
    def generator(self) -> ScheduleGenerator:
        return self._generator

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    def compute_balance(
        self,
        entries: Iterable[LedgerEntry],
        account: AccountRef,
    ) -> Decimal:
        """
        Balance = sum of CASH_OUT amounts minus sum of CASH_IN amounts.

        A negative balance on an installment account is principal still
        to be repaid. Returns 0 for an account with no entries.
        """
        return sum(
            (e.signed_amount for e in entries_for(entries, account)),
            Decimal("0"),
        )

    def summarize(
        self,
        entries: Iterable[LedgerEntry],
        account: AccountRef,
    ) -> AccountTotals:
        """Cash in, cash out and balance for one account."""
        total_in = Decimal("0")
        total_out = Decimal("0")
        count = 0
        for entry in entries_for(entries, account):
            count += 1
            if entry.kind == EntryKind.CASH_IN:
                total_in += entry.amount
            else:
                total_out += entry.amount
        return AccountTotals(
            total_in=total_in,
            total_out=total_out,
            balance=total_out - total_in,
            entry_count=count,
        )

    def settled_dates(
        self,
        entries: Iterable[LedgerEntry],
        account: AccountRef,
    ) -> set[date]:
        """Dates that already have a CASH_OUT recorded on the account."""
        return {
            e.date for e in entries_for(entries, account)
            if e.kind == EntryKind.CASH_OUT
        }

    # -------------------------------------------------------------------------
    # Drafting
    # -------------------------------------------------------------------------

    def plan_cash_in(
        self,
        total_amount: Any,
        period_count: Optional[Any],
        description: str = "",
        *,
        account: AccountRef,
        on: Optional[date] = None,
        category: Optional[str] = None,
        frequency: Union[Frequency, str] = Frequency.MONTHLY,
    ) -> EntryDraft:
        """
        Draft the lump-sum CASH_IN for an installment account.

        The per-period amount is total / period_count (exact decimal
        division). It is stored as structured terms on the draft and shown
        in the description as "(EMI <n> x <amount>)".

        Raises:
            InvalidAmount: If total_amount is not a positive number
            InvalidPeriodCount: If period_count is given and not positive
            InvalidFrequency: If frequency is not recognised
            DescriptionTooLong: If the annotated description does not fit
        """
        total = to_amount(total_amount, "Total amount")
        freq = parse_frequency(frequency)

        terms = None
        text = description.strip()
        if period_count is not None:
            count = to_period_count(period_count)
            terms = InstallmentTerms(
                period_count=count,
                per_period_amount=total / count,
                frequency=freq,
            )
            note = (
                f"(EMI {count} x "
                f"{self._currency_symbol}{terms.per_period_amount:.2f})"
            )
            text = annotate(text, note)
        elif len(text) > MAX_DESCRIPTION_LENGTH:
            raise DescriptionTooLong(len(text), MAX_DESCRIPTION_LENGTH)

        return EntryDraft(
            amount=total,
            kind=EntryKind.CASH_IN,
            date=on or date.today(),
            description=text,
            category=category or self._default_category,
            installment=terms,
            **account_fields(account),
        )

    def plan_cash_out(
        self,
        account: AccountRef,
        entries: Iterable[LedgerEntry],
        selected_slots: Iterable[Union[ScheduleSlot, date]],
        per_period_amount: Optional[Any] = None,
        *,
        description: str = "",
        category: Optional[str] = None,
    ) -> list[EntryDraft]:
        """
        Draft one CASH_OUT per selected slot.

        Drafts come back in ascending date order. Selecting the same date
        twice yields one draft. Already-settled dates are NOT filtered out
        here; use `build_plan` (open slots) or the EntryValidator for that.

        Args:
            account: Installment account being settled
            entries: The account's existing entries (for amount inference)
            selected_slots: Slots or dates the user ticked
            per_period_amount: Amount per slot; inferred from the latest
                CASH_IN when omitted

        Raises:
            InvalidAmount: If the amount is non-positive or cannot be inferred
            EmptySelection: If nothing was selected
            DescriptionTooLong: If the annotated description does not fit
        """
        if per_period_amount is None:
            per_period_amount = self.infer_per_period_amount(entries, account)
            if per_period_amount is None:
                raise InvalidAmount(
                    "Per-period amount could not be recovered from the last "
                    "cash in; please enter it manually"
                )
        amount = to_amount(per_period_amount, "Per-period amount")

        dates = sorted({slot_date(s) for s in selected_slots})
        if not dates:
            raise EmptySelection("Select at least one installment to settle")

        text = annotate(description, EMI_PAYMENT_SUFFIX)
        fields = account_fields(account)

        return [
            EntryDraft(
                amount=amount,
                kind=EntryKind.CASH_OUT,
                date=due,
                description=text,
                category=category or self._default_category,
                **fields,
            )
            for due in dates
        ]

    def infer_per_period_amount(
        self,
        entries: Iterable[LedgerEntry],
        account: AccountRef,
    ) -> Optional[Decimal]:
        """
        Recover the per-period amount from the latest CASH_IN.

        Structured terms win. Otherwise the description is searched for
        "EMI <n>" (case-insensitive) and the amount divided by n.
        Returns None when neither is available.
        """
        cash_in = latest_cash_in(entries, account)
        if cash_in is None:
            return None

        if cash_in.installment is not None:
            return cash_in.installment.per_period_amount

        match = EMI_COUNT_PATTERN.search(cash_in.description)
        if not match:
            return None
        count = int(match.group(1))
        if count <= 0:
            return None
        return cash_in.amount / count

    # -------------------------------------------------------------------------
    # Plan view
    # -------------------------------------------------------------------------

    def build_plan(
        self,
        account: AccountRef,
        entries: Iterable[LedgerEntry],
        frequency: Optional[Union[Frequency, str]] = None,
        count: Optional[int] = None,
        per_period_amount: Optional[Any] = None,
        today: Optional[date] = None,
    ) -> InstallmentPlan:
        """
        Assemble the installment view for an account.

        Open slots are the generated schedule minus dates that already
        have a CASH_OUT, so a settled period is never offered again.
        """
        entries = entries_for(entries, account)
        cash_in = latest_cash_in(entries, account)

        if frequency is not None:
            freq = parse_frequency(frequency)
        elif cash_in is not None and cash_in.installment is not None:
            freq = cash_in.installment.frequency
        else:
            freq = self._default_frequency

        slots = self._generator.schedule_for(
            entries,
            account,
            freq,
            count=self._default_count if count is None else count,
            today=today,
        )
        settled = self.settled_dates(entries, account)

        if per_period_amount is not None:
            per_period = to_amount(per_period_amount, "Per-period amount")
        else:
            per_period = self.infer_per_period_amount(entries, account)

        return InstallmentPlan(
            account=account_name(account),
            frequency=freq,
            last_cash_in=cash_in,
            per_period_amount=per_period,
            slots=slots,
            open_slots=[s for s in slots if s.due_date not in settled],
            settled_dates=sorted(settled & {s.due_date for s in slots}),
            balance=self.compute_balance(entries, account),
        )
