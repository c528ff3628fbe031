"""Services package."""

from emi_tracker.services.storage import (
    AccountRegistryInterface,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    EntryStoreInterface,
    GoogleSheetsAccountRegistry,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
    InMemoryAccountRegistry,
    InMemoryAuditStorage,
    InMemoryEntryStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AccountRegistryInterface",
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "EntryStoreInterface",
    "GoogleSheetsAccountRegistry",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStore",
    "InMemoryAccountRegistry",
    "InMemoryAuditStorage",
    "InMemoryEntryStore",
    "NotFoundError",
    "StorageError",
]
