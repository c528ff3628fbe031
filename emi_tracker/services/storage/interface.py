"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the installment planner decoupled from storage entirely

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from emi_tracker.models.ledger import Account, LedgerEntry
from emi_tracker.models.audit import AuditEvent


class EntryStoreInterface(ABC):
    """
    Abstract interface for ledger entry storage.

    Entries are append-only: an edit is a remove followed by an append.
    """

    @abstractmethod
    async def list_entries(
        self,
        account: Optional[str] = None,
        account_id: Optional[UUID] = None,
    ) -> list[LedgerEntry]:
        """
        List entries, newest first (created_at descending).

        Args:
            account: Only entries recorded under this display name
            account_id: Only entries recorded against this account id

        Returns:
            Matching entries; all entries if no filter is given
        """
        pass

    @abstractmethod
    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        """
        Retrieve an entry by its ID.

        Returns:
            The entry if found, None otherwise
        """
        pass

    @abstractmethod
    async def append_entry(self, entry: LedgerEntry) -> bool:
        """
        Persist a single entry.

        Raises:
            DuplicateError: If an entry with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def append_entries(self, entries: list[LedgerEntry]) -> bool:
        """
        Persist several entries as one all-or-nothing batch.

        Either every entry is stored or none is. A failure never
        leaves a partial settlement behind.

        Raises:
            DuplicateError: If any entry id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def remove_entry(self, entry_id: UUID) -> bool:
        """
        Delete an entry by ID.

        Returns:
            True if deleted, False if it did not exist
        """
        pass


class AccountRegistryInterface(ABC):
    """
    Abstract interface for account storage.
    """

    @abstractmethod
    async def get_account(self, name: str) -> Optional[Account]:
        """Look up an account by display name."""
        pass

    @abstractmethod
    async def get_account_by_id(self, account_id: UUID) -> Optional[Account]:
        """Look up an account by its stable identifier."""
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """All accounts, newest first."""
        pass

    @abstractmethod
    async def save_account(self, account: Account) -> bool:
        """
        Create an account.

        Raises:
            DuplicateError: If another account already uses the name
        """
        pass

    @abstractmethod
    async def rename_account(self, account_id: UUID, new_name: str) -> Account:
        """
        Change an account's display name.

        Entries keep their account_id, so they stay attached.

        Raises:
            NotFoundError: If the account does not exist
            DuplicateError: If another account already uses the name
        """
        pass

    @abstractmethod
    async def delete_account(self, account_id: UUID) -> bool:
        """
        Delete an account by ID.

        Returns:
            True if deleted, False if it did not exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one settlement).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
