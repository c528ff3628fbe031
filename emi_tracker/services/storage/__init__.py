"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests
and offline sessions.
"""

from emi_tracker.services.storage.interface import (
    AccountRegistryInterface,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    EntryStoreInterface,
    NotFoundError,
    StorageError,
)
from emi_tracker.services.storage.memory import (
    InMemoryAccountRegistry,
    InMemoryAuditStorage,
    InMemoryEntryStore,
)
from emi_tracker.services.storage.google_sheets import (
    GoogleSheetsAccountRegistry,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
)

__all__ = [
    # Interfaces
    "AccountRegistryInterface",
    "AuditStorageInterface",
    "EntryStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAccountRegistry",
    "InMemoryAuditStorage",
    "InMemoryEntryStore",
    # Google Sheets implementation
    "GoogleSheetsAccountRegistry",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStore",
]
