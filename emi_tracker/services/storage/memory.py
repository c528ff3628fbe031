"""
In-Memory Storage Implementation

Keeps everything in process memory. Used by the tests and when no
spreadsheet is configured, so the app still works for a single session.
"""

from typing import Optional
from uuid import UUID

from emi_tracker.models.ledger import Account, LedgerEntry
from emi_tracker.models.audit import AuditEvent
from emi_tracker.services.storage.interface import (
    AccountRegistryInterface,
    AuditStorageInterface,
    DuplicateError,
    EntryStoreInterface,
    NotFoundError,
)


class InMemoryEntryStore(EntryStoreInterface):
    """Entry store backed by a dict keyed on entry id."""

    def __init__(self, entries: Optional[list[LedgerEntry]] = None):
        self._entries: dict[UUID, LedgerEntry] = {}
        for entry in entries or []:
            self._entries[entry.id] = entry

    async def list_entries(
        self,
        account: Optional[str] = None,
        account_id: Optional[UUID] = None,
    ) -> list[LedgerEntry]:
        entries = [
            e for e in self._entries.values()
            if (account is None or e.account == account)
            and (account_id is None or e.account_id == account_id)
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        return self._entries.get(entry_id)

    async def append_entry(self, entry: LedgerEntry) -> bool:
        if entry.id in self._entries:
            raise DuplicateError(f"Entry already exists: {entry.id}")
        self._entries[entry.id] = entry
        return True

    async def append_entries(self, entries: list[LedgerEntry]) -> bool:
        # Check the whole batch before writing anything
        seen = set()
        for entry in entries:
            if entry.id in self._entries or entry.id in seen:
                raise DuplicateError(f"Entry already exists: {entry.id}")
            seen.add(entry.id)

        for entry in entries:
            self._entries[entry.id] = entry
        return True

    async def remove_entry(self, entry_id: UUID) -> bool:
        return self._entries.pop(entry_id, None) is not None


class InMemoryAccountRegistry(AccountRegistryInterface):
    """Account registry backed by a dict keyed on account id."""

    def __init__(self, accounts: Optional[list[Account]] = None):
        self._accounts: dict[UUID, Account] = {}
        for account in accounts or []:
            self._accounts[account.id] = account

    def _name_taken(self, name: str, exclude: Optional[UUID] = None) -> bool:
        wanted = name.strip().lower()
        return any(
            a.name.lower() == wanted and a.id != exclude
            for a in self._accounts.values()
        )

    async def get_account(self, name: str) -> Optional[Account]:
        for account in self._accounts.values():
            if account.name == name:
                return account
        return None

    async def get_account_by_id(self, account_id: UUID) -> Optional[Account]:
        return self._accounts.get(account_id)

    async def list_accounts(self) -> list[Account]:
        return sorted(
            self._accounts.values(),
            key=lambda a: a.created_at,
            reverse=True,
        )

    async def save_account(self, account: Account) -> bool:
        if account.id in self._accounts or self._name_taken(account.name):
            raise DuplicateError(f"Account already exists: {account.name}")
        self._accounts[account.id] = account
        return True

    async def rename_account(self, account_id: UUID, new_name: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
        if self._name_taken(new_name, exclude=account_id):
            raise DuplicateError(f"Account already exists: {new_name}")
        renamed = account.rename(new_name)
        self._accounts[account_id] = renamed
        return renamed

    async def delete_account(self, account_id: UUID) -> bool:
        return self._accounts.pop(account_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
