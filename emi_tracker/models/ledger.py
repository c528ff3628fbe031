"""
Core Data Models for the EMI Tracker

These models define the schemas for everything the installment engine
reads and produces:
1. Ledger entries and the drafts that become them
2. Accounts (with the installment flag)
3. Ephemeral schedule slots and installment plans

DESIGN DECISION: An entry's economic sign comes ONLY from its kind.
Amounts are always non-negative magnitudes.

DESIGN DECISION: Entries are immutable. Editing an entry means deleting
it and recreating it with the same id and creation timestamp.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


MAX_DESCRIPTION_LENGTH = 500


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntryKind(str, Enum):
    """Direction of money for a ledger entry."""
    CASH_IN = "CASH_IN"    # Money received (e.g. loan disbursement)
    CASH_OUT = "CASH_OUT"  # Money paid (e.g. installment settlement)


class Frequency(str, Enum):
    """Installment frequencies supported by the schedule generator."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class AccountCategory(str, Enum):
    """Account groupings offered when creating an account."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    CASH = "cash"


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class InstallmentTerms(BaseModel):
    """
    Structured installment metadata stored on a CASH_IN entry.

    This is the authoritative source for the per-period amount.
    The "(EMI n x amount)" description annotation is display text only.
    """
    model_config = ConfigDict(frozen=True)

    period_count: int = Field(
        ...,
        gt=0,
        description="Number of installments the lump sum is repaid over"
    )
    per_period_amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount due each period (exact division of the total)"
    )
    frequency: Frequency = Field(
        default=Frequency.MONTHLY,
        description="How often an installment falls due"
    )


class LedgerEntry(BaseModel):
    """
    A persisted ledger entry.

    CRITICAL: Entries are never mutated in place. An edit is a delete
    followed by a recreate that keeps `id` and `created_at`.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique entry ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Owning user"
    )

    # Economics
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Non-negative magnitude; sign comes from kind"
    )
    kind: EntryKind
    date: Annotated[
        date,
        Field(description="Economic date of the transaction")
    ]

    # Labels
    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    category: str = Field(default="General", max_length=100)

    # Account reference. account_id is the stable key; account is the
    # display name at the time the entry was written.
    account: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Account display name"
    )
    account_id: Optional[UUID] = Field(
        default=None,
        description="Stable account identifier (absent on legacy rows)"
    )

    # Installment metadata (CASH_IN entries on installment accounts only)
    installment: Optional[InstallmentTerms] = None

    # Ordering only, never economics
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Creation timestamp"
    )

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it contributes to an account balance."""
        return self.amount if self.kind == EntryKind.CASH_OUT else -self.amount


class EntryDraft(BaseModel):
    """
    An in-memory, not-yet-persisted ledger entry produced by the planner.

    Drafts carry no identity. `materialize` turns one into a LedgerEntry
    once the caller knows who owns it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    amount: Decimal = Field(..., ge=0)
    kind: EntryKind
    date: date
    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    category: str = Field(default="General", max_length=100)
    account: str = Field(..., min_length=1, max_length=200)
    account_id: Optional[UUID] = None
    installment: Optional[InstallmentTerms] = None

    def materialize(
        self,
        owner_id: str,
        created_at: Optional[datetime] = None,
        entry_id: Optional[UUID] = None,
    ) -> LedgerEntry:
        """Build the LedgerEntry to persist for this draft."""
        return LedgerEntry(
            id=entry_id or uuid4(),
            owner_id=owner_id,
            created_at=created_at or datetime.utcnow(),
            **self.model_dump(),
        )


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    An account that ledger entries are grouped under.

    The balance is never stored. It is always recomputed from entries.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )
    category: AccountCategory = Field(default=AccountCategory.CHECKING)
    is_installment: bool = Field(
        default=False,
        description="Settled through scheduled periodic CASH_OUT entries"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def rename(self, new_name: str) -> "Account":
        """Return a copy with a new display name and the same identity."""
        return self.model_copy(update={"name": new_name.strip()})

    def owns(self, entry: LedgerEntry) -> bool:
        """
        Does this entry belong to this account?

        Entries written with an account_id join on it. Legacy entries
        without one fall back to the display name.
        """
        if entry.account_id is not None:
            return entry.account_id == self.id
        return entry.account == self.name


# =============================================================================
# SCHEDULING (ephemeral, never persisted)
# =============================================================================

class ScheduleSlot(BaseModel):
    """One candidate due date in a generated installment schedule."""
    model_config = ConfigDict(frozen=True)

    due_date: date
    label: str

    @field_validator("due_date", mode="before")
    @classmethod
    def strip_time(cls, v):
        """Slots compare on calendar date only."""
        if isinstance(v, datetime):
            return v.date()
        return v


class AccountTotals(BaseModel):
    """Cash in / cash out totals for one account."""

    total_in: Decimal = Decimal("0")
    total_out: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    entry_count: int = Field(default=0, ge=0)


class InstallmentPlan(BaseModel):
    """
    Derived view of an installment account, computed on demand.

    Combines the latest CASH_IN, the per-period amount (if known),
    the generated schedule and the slots still open for settlement.
    """

    account: str
    frequency: Frequency
    last_cash_in: Optional[LedgerEntry] = None
    per_period_amount: Optional[Decimal] = None
    slots: list[ScheduleSlot] = Field(default_factory=list)
    open_slots: list[ScheduleSlot] = Field(default_factory=list)
    settled_dates: list[date] = Field(default_factory=list)
    balance: Decimal = Decimal("0")

    @property
    def outstanding(self) -> Decimal:
        """Principal still to be repaid (zero once fully settled)."""
        return max(-self.balance, Decimal("0"))

    @property
    def needs_manual_amount(self) -> bool:
        """True when the per-period amount could not be recovered."""
        return self.per_period_amount is None
