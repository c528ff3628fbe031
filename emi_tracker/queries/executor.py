"""
Ledger Query Execution

DESIGN DECISION: Summaries are DETERMINISTIC.
Every figure shown on the Accounts and Dashboard pages is computed here
from the stored entries, never cached and never estimated.

If an account has no entries, its totals are zero and `has_entries`
is False, so the UI can say so instead of guessing.

Entry search filters by a case-insensitive term over description and
category and by kind, then sorts by date, amount or description.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from emi_tracker.models.ledger import Account, AccountCategory, EntryKind, LedgerEntry
from emi_tracker.planning import InstallmentPlanner
from emi_tracker.services.storage import (
    AccountRegistryInterface,
    EntryStoreInterface,
)


# Sort keys for entry search; date ties fall back to creation order
ENTRY_SORT_KEYS = {
    "date": lambda e: (e.date, e.created_at),
    "amount": lambda e: (e.amount, e.created_at),
    "description": lambda e: (e.description.casefold(), e.created_at),
}


class QueryExecutionError(Exception):
    """Error during query execution."""

    def __init__(self, message: str, account: Optional[str] = None):
        self.account = account
        super().__init__(message)


class AccountSummary(BaseModel):
    """Totals for a single account, as shown on the Accounts page."""

    account: str
    account_id: Optional[str] = None
    category: AccountCategory = AccountCategory.CHECKING
    is_installment: bool = False
    total_in: Decimal = Decimal("0")
    total_out: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    entry_count: int = Field(default=0, ge=0)
    last_activity: Optional[datetime] = None

    @property
    def has_entries(self) -> bool:
        return self.entry_count > 0

    @property
    def outstanding(self) -> Decimal:
        """Principal still to repay on an installment account."""
        if not self.is_installment:
            return Decimal("0")
        return max(-self.balance, Decimal("0"))


class LedgerOverview(BaseModel):
    """Aggregate view across every account (the Dashboard)."""

    account_count: int = 0
    entry_count: int = 0
    total_in: Decimal = Decimal("0")
    total_out: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    installment_outstanding: Decimal = Decimal("0")
    accounts: list[AccountSummary] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.utcnow)


class LedgerQueryExecutor:
    """
    Computes account and ledger summaries from storage.

    GUARANTEES:
    - Only returns real data from storage
    - Entries are joined to accounts by id when recorded with one
    - Unknown accounts raise instead of returning empty totals
    """

    def __init__(
        self,
        entry_store: EntryStoreInterface,
        account_registry: AccountRegistryInterface,
        planner: Optional[InstallmentPlanner] = None,
    ):
        self._entries = entry_store
        self._accounts = account_registry
        self._planner = planner or InstallmentPlanner()

    async def account_summary(self, name: str) -> AccountSummary:
        """
        Summarize one account by display name.

        Raises:
            QueryExecutionError: If the account does not exist
        """
        account = await self._accounts.get_account(name)
        if account is None:
            raise QueryExecutionError(f"Account '{name}' not found", account=name)

        entries = await self._entries.list_entries()
        return self._summarize(account, entries)

    async def account_summaries(self) -> list[AccountSummary]:
        """Summaries for every account, in registry order (newest first)."""
        accounts = await self._accounts.list_accounts()
        entries = await self._entries.list_entries()
        return [self._summarize(account, entries) for account in accounts]

    async def overall_summary(self) -> LedgerOverview:
        """Totals across all accounts plus the per-account breakdown."""
        summaries = await self.account_summaries()

        total_in = sum((s.total_in for s in summaries), Decimal("0"))
        total_out = sum((s.total_out for s in summaries), Decimal("0"))

        return LedgerOverview(
            account_count=len(summaries),
            entry_count=sum(s.entry_count for s in summaries),
            total_in=total_in,
            total_out=total_out,
            balance=total_out - total_in,
            installment_outstanding=sum(
                (s.outstanding for s in summaries), Decimal("0")
            ),
            accounts=summaries,
        )

    def _summarize(
        self,
        account: Account,
        entries: list[LedgerEntry],
    ) -> AccountSummary:
        """Fold the account's entries into an AccountSummary."""
        totals = self._planner.summarize(entries, account)
        owned = [e for e in entries if account.owns(e)]

        return AccountSummary(
            account=account.name,
            account_id=str(account.id),
            category=account.category,
            is_installment=account.is_installment,
            total_in=totals.total_in,
            total_out=totals.total_out,
            balance=totals.balance,
            entry_count=totals.entry_count,
            last_activity=max((e.created_at for e in owned), default=None),
        )

    async def search_entries(
        self,
        account: Optional[str] = None,
        term: str = "",
        kind: Optional[EntryKind] = None,
        sort_by: str = "date",
        descending: bool = True,
    ) -> list[LedgerEntry]:
        """
        Filter and sort entries for the transaction list.

        Args:
            account: Restrict to one account by display name (all if None)
            term: Case-insensitive text matched against description or category
            kind: CASH_IN or CASH_OUT; None keeps both
            sort_by: "date", "amount" or "description"
            descending: Newest / largest / Z first when True

        Raises:
            QueryExecutionError: If the account or sort key is unknown
        """
        if sort_by not in ENTRY_SORT_KEYS:
            raise QueryExecutionError(f"Cannot sort entries by '{sort_by}'", account=account)

        entries = await self._entries.list_entries()
        if account is not None:
            owner = await self._accounts.get_account(account)
            if owner is None:
                raise QueryExecutionError(f"Account '{account}' not found", account=account)
            entries = [e for e in entries if owner.owns(e)]

        needle = term.strip().casefold()
        matches = [
            e for e in entries
            if (kind is None or e.kind == kind)
            and (
                needle in e.description.casefold()
                or needle in e.category.casefold()
            )
        ]

        return sorted(matches, key=ENTRY_SORT_KEYS[sort_by], reverse=descending)
