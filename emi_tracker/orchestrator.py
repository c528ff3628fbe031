"""
Main Orchestrator for the EMI Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Installments (plan -> cash in -> select periods -> validate -> save)
2. Ledger upkeep (accounts and individual entries)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The planner never touches storage; only the flows do
- Nothing is persisted without passing validation
- A settlement batch is saved all-or-nothing
- Every change is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Union
from uuid import UUID

import structlog

from emi_tracker.audit import AuditLogger, create_correlation_id
from emi_tracker.config import get_settings
from emi_tracker.models.ledger import (
    Account,
    AccountCategory,
    EntryDraft,
    Frequency,
    InstallmentPlan,
    LedgerEntry,
    ScheduleSlot,
)
from emi_tracker.planning import (
    AccountNotEmpty,
    AlreadySettled,
    DraftsRejected,
    InstallmentPlanner,
    NotInstallmentAccount,
    PlanningError,
    UnknownAccount,
    entries_for,
)
from emi_tracker.queries import LedgerQueryExecutor
from emi_tracker.services.storage import (
    AccountRegistryInterface,
    EntryStoreInterface,
    GoogleSheetsAccountRegistry,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
    InMemoryAccountRegistry,
    InMemoryAuditStorage,
    InMemoryEntryStore,
    NotFoundError,
)
from emi_tracker.validation import EntryValidator


logger = structlog.get_logger("emi_tracker.orchestrator")


def creation_times(count: int, start: Optional[datetime] = None) -> list[datetime]:
    """
    Strictly increasing creation timestamps for a batch.

    Entries saved together still sort in the order they were drafted.
    """
    start = start or datetime.utcnow()
    return [start + timedelta(microseconds=i) for i in range(count)]


class InstallmentFlow:
    """
    Orchestrates the installment flow.

    Flow:
    1. Plan -> Derive schedule, open slots and per-period amount
    2. Cash in -> Record the lump sum with its installment terms
    3. Select -> User ticks the periods being paid
    4. Validate -> Two-stage validation (duplicate-settlement guard)
    5. Save -> Persist the whole batch atomically

    A period that already has a settlement is never saved twice.
    """

    def __init__(
        self,
        entry_store: EntryStoreInterface,
        account_registry: AccountRegistryInterface,
        planner: Optional[InstallmentPlanner] = None,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        owner_id: Optional[str] = None,
    ):
        self._entries = entry_store
        self._accounts = account_registry
        self._planner = planner or InstallmentPlanner.from_settings()
        self._validator = validator or EntryValidator()
        self._audit_logger = audit_logger
        self._owner_id = owner_id or get_settings().app.owner_id

    @property
    def planner(self) -> InstallmentPlanner:
        return self._planner

    async def _resolve_account(self, account_name: str) -> Account:
        account = await self._accounts.get_account(account_name)
        if account is None:
            raise UnknownAccount(account_name)
        return account

    async def _account_entries(self, account: Account) -> list[LedgerEntry]:
        # Filter here rather than in the store so legacy rows without an
        # account_id still join by name.
        return entries_for(await self._entries.list_entries(), account)

    async def _reject(
        self,
        account_name: str,
        error: PlanningError,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_planning_rejected(
                account=account_name,
                error=error,
                correlation_id=correlation_id,
            )

    async def get_plan(
        self,
        account_name: str,
        frequency: Optional[Union[Frequency, str]] = None,
        count: Optional[int] = None,
        per_period_amount: Optional[Any] = None,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> InstallmentPlan:
        """
        Build the installment view for an account.

        Raises:
            UnknownAccount: If no account has this name
            NotInstallmentAccount: If the account is a regular account
            PlanningError: If frequency or amount overrides are invalid
        """
        correlation_id = correlation_id or create_correlation_id()

        account = await self._resolve_account(account_name)
        if not account.is_installment:
            raise NotInstallmentAccount(account.name)

        entries = await self._account_entries(account)
        plan = self._planner.build_plan(
            account,
            entries,
            frequency=frequency,
            count=count,
            per_period_amount=per_period_amount,
            today=today,
        )

        if self._audit_logger:
            await self._audit_logger.log_plan_generated(
                account=account.name,
                frequency=plan.frequency.value,
                open_slots=len(plan.open_slots),
                correlation_id=correlation_id,
            )

        return plan

    async def get_balance(self, account_name: str) -> Decimal:
        """Current balance of any account (negative = still owed)."""
        account = await self._resolve_account(account_name)
        entries = await self._account_entries(account)
        return self._planner.compute_balance(entries, account)

    async def record_cash_in(
        self,
        account_name: str,
        total_amount: Any,
        period_count: Optional[Any],
        description: str = "",
        frequency: Optional[Union[Frequency, str]] = None,
        on: Optional[date] = None,
        category: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEntry:
        """
        Record a lump-sum cash in.

        With a period_count the account must be an installment account
        and the entry carries the installment terms. Without one it is a
        plain cash in.

        Returns:
            The persisted LedgerEntry
        """
        correlation_id = correlation_id or create_correlation_id()

        account = await self._resolve_account(account_name)
        is_emi = period_count is not None

        try:
            if is_emi and not account.is_installment:
                raise NotInstallmentAccount(account.name)
            draft = self._planner.plan_cash_in(
                total_amount,
                period_count,
                description,
                account=account,
                on=on,
                category=category,
                frequency=frequency or get_settings().app.default_frequency,
            )
        except PlanningError as e:
            await self._reject(account.name, e, correlation_id)
            raise

        entries = await self._account_entries(account)
        result = self._validator.validate(
            [draft],
            account,
            entries,
            require_installment=is_emi,
        )
        if not result.is_valid:
            await self._log_validation_failed(result, correlation_id)
            raise DraftsRejected(
                account.name,
                [i.message for i in result.issues if i.severity == "error"],
            )

        entry = draft.materialize(self._owner_id)
        try:
            await self._entries.append_entry(entry)
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    account=account.name,
                    entry_count=1,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_cash_in_recorded(
                entry_id=entry.id,
                account=account.name,
                amount=entry.amount,
                period_count=(
                    entry.installment.period_count if entry.installment else None
                ),
                correlation_id=correlation_id,
            )

        return entry

    async def settle_periods(
        self,
        account_name: str,
        selected: Iterable[Union[ScheduleSlot, date]],
        per_period_amount: Optional[Any] = None,
        description: str = "",
        category: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[LedgerEntry]:
        """
        Settle the selected installment periods.

        CRITICAL: The batch is validated against the stored entries first
        and then saved in a single all-or-nothing write.

        Raises:
            UnknownAccount: If no account has this name
            NotInstallmentAccount: If the account is a regular account
            InvalidAmount: If no usable per-period amount is available
            EmptySelection: If nothing was selected
            AlreadySettled: If any selected period is already paid
            StorageError: If the batch could not be saved (nothing is saved)

        Returns:
            The persisted CASH_OUT entries in date order
        """
        correlation_id = correlation_id or create_correlation_id()

        account = await self._resolve_account(account_name)
        entries = await self._account_entries(account)

        try:
            if not account.is_installment:
                raise NotInstallmentAccount(account.name)
            drafts = self._planner.plan_cash_out(
                account,
                entries,
                selected,
                per_period_amount,
                description=description,
                category=category,
            )
        except PlanningError as e:
            await self._reject(account.name, e, correlation_id)
            raise

        result = self._validator.validate(drafts, account, entries)
        if not result.is_valid:
            await self._log_validation_failed(result, correlation_id)
            if result.issues_of_type("already_settled"):
                settled = self._planner.settled_dates(entries, account)
                raise AlreadySettled(
                    account.name,
                    [d.date for d in drafts if d.date in settled],
                )
            raise DraftsRejected(
                account.name,
                [i.message for i in result.issues if i.severity == "error"],
            )

        new_entries = [
            draft.materialize(self._owner_id, created_at=created_at)
            for draft, created_at in zip(drafts, creation_times(len(drafts)))
        ]

        try:
            await self._entries.append_entries(new_entries)
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    account=account.name,
                    entry_count=len(new_entries),
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_settlement_recorded(
                account=account.name,
                entry_ids=[e.id for e in new_entries],
                dates=[e.date for e in new_entries],
                total=sum((e.amount for e in new_entries), Decimal("0")),
                correlation_id=correlation_id,
            )

        return new_entries

    async def _log_validation_failed(self, result, correlation_id: UUID) -> None:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                account=result.account,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ],
                correlation_id=correlation_id,
            )


class LedgerFlow:
    """
    Orchestrates account and entry maintenance.

    Entries are immutable: replacing one deletes it and recreates it with
    the same id and creation time.
    """

    def __init__(
        self,
        entry_store: EntryStoreInterface,
        account_registry: AccountRegistryInterface,
        audit_logger: Optional[AuditLogger] = None,
        owner_id: Optional[str] = None,
    ):
        self._entries = entry_store
        self._accounts = account_registry
        self._audit_logger = audit_logger
        self._owner_id = owner_id or get_settings().app.owner_id

    async def list_accounts(self) -> list[Account]:
        return await self._accounts.list_accounts()

    async def account_entries(self, account_name: str) -> list[LedgerEntry]:
        """Entries recorded against an account, newest first."""
        account = await self._accounts.get_account(account_name)
        if account is None:
            raise UnknownAccount(account_name)
        return entries_for(await self._entries.list_entries(), account)

    async def create_account(
        self,
        name: str,
        category: AccountCategory = AccountCategory.CHECKING,
        is_installment: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        """
        Create an account.

        Raises:
            DuplicateError: If the name is already taken
        """
        correlation_id = correlation_id or create_correlation_id()

        account = Account(
            name=name,
            category=category,
            is_installment=is_installment,
        )
        await self._accounts.save_account(account)

        if self._audit_logger:
            await self._audit_logger.log_account_created(
                account_id=account.id,
                name=account.name,
                is_installment=account.is_installment,
                correlation_id=correlation_id,
            )

        return account

    async def rename_account(
        self,
        account_id: UUID,
        new_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        """
        Rename an account without detaching its entries.

        Entries carrying the account_id follow automatically. Legacy
        entries that only carry the old name are recreated with the
        account_id so they stay attached. They are rewritten as one
        batch; if that write fails, the originals and the old name are
        restored.

        Raises:
            NotFoundError: If the account does not exist
            DuplicateError: If the new name is already taken
            StorageError: If the legacy entries could not be rewritten
        """
        correlation_id = correlation_id or create_correlation_id()

        account = await self._accounts.get_account_by_id(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")

        legacy = [
            e for e in await self._entries.list_entries(account=account.name)
            if e.account_id is None
        ]

        renamed = await self._accounts.rename_account(account_id, new_name)

        if legacy:
            adopted = [
                e.model_copy(update={"account": renamed.name, "account_id": renamed.id})
                for e in legacy
            ]
            for entry in legacy:
                await self._entries.remove_entry(entry.id)
            try:
                await self._entries.append_entries(adopted)
            except Exception as e:
                await self._entries.append_entries(legacy)
                await self._accounts.rename_account(account_id, account.name)
                if self._audit_logger:
                    await self._audit_logger.log_save_failed(
                        account=account.name,
                        entry_count=len(adopted),
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise

        if self._audit_logger:
            await self._audit_logger.log_account_renamed(
                account_id=account_id,
                old_name=account.name,
                new_name=renamed.name,
                correlation_id=correlation_id,
            )

        return renamed

    async def delete_account(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete an account that has no entries.

        Raises:
            AccountNotEmpty: If entries are still recorded against it

        Returns:
            True if deleted, False if it did not exist
        """
        correlation_id = correlation_id or create_correlation_id()

        account = await self._accounts.get_account_by_id(account_id)
        if account is None:
            return False

        owned = entries_for(await self._entries.list_entries(), account)
        if owned:
            raise AccountNotEmpty(account.name, len(owned))

        deleted = await self._accounts.delete_account(account_id)

        if deleted and self._audit_logger:
            await self._audit_logger.log_account_deleted(
                account_id=account_id,
                name=account.name,
                correlation_id=correlation_id,
            )

        return deleted

    async def replace_entry(
        self,
        entry_id: UUID,
        draft: EntryDraft,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEntry:
        """
        Replace an entry with an edited version.

        The replacement keeps the original id, owner and creation time.
        If writing it fails, the original is restored.

        Raises:
            NotFoundError: If the entry does not exist
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._entries.get_entry(entry_id)
        if existing is None:
            raise NotFoundError(f"Entry not found: {entry_id}")

        replacement = draft.materialize(
            existing.owner_id,
            created_at=existing.created_at,
            entry_id=existing.id,
        )

        await self._entries.remove_entry(existing.id)
        try:
            await self._entries.append_entry(replacement)
        except Exception as e:
            await self._entries.append_entry(existing)
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    account=existing.account,
                    entry_count=1,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_entry_replaced(
                entry_id=replacement.id,
                account=replacement.account,
                correlation_id=correlation_id,
            )

        return replacement

    async def delete_entry(
        self,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete an entry.

        Returns:
            True if deleted, False if it did not exist
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._entries.get_entry(entry_id)
        if existing is None:
            return False

        deleted = await self._entries.remove_entry(entry_id)

        if deleted and self._audit_logger:
            await self._audit_logger.log_entry_deleted(
                entry_id=entry_id,
                account=existing.account,
                correlation_id=correlation_id,
            )

        return deleted


def create_app_components(
    use_storage: bool = True,
) -> tuple[InstallmentFlow, LedgerFlow, LedgerQueryExecutor, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False (or leave Sheets unconfigured) to keep
                    everything in memory for this session.

    Returns:
        (installment_flow, ledger_flow, query_executor, sheets_client)
    """
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            entry_store = GoogleSheetsEntryStore(sheets_client)
            account_registry = GoogleSheetsAccountRegistry(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            use_storage = False

    if not use_storage:
        entry_store = InMemoryEntryStore()
        account_registry = InMemoryAccountRegistry()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    planner = InstallmentPlanner.from_settings()

    installment_flow = InstallmentFlow(
        entry_store=entry_store,
        account_registry=account_registry,
        planner=planner,
        audit_logger=audit_logger,
    )

    ledger_flow = LedgerFlow(
        entry_store=entry_store,
        account_registry=account_registry,
        audit_logger=audit_logger,
    )

    query_executor = LedgerQueryExecutor(
        entry_store=entry_store,
        account_registry=account_registry,
        planner=planner,
    )

    return installment_flow, ledger_flow, query_executor, sheets_client
