"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. The user can view and export their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions. A settlement batch is written with a single
  append_rows request so it lands whole or not at all.
- Limited query capabilities (we filter in Python)
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from emi_tracker.config import get_settings
from emi_tracker.models.ledger import (
    Account,
    AccountCategory,
    EntryKind,
    InstallmentTerms,
    LedgerEntry,
)
from emi_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from emi_tracker.services.storage.interface import (
    AccountRegistryInterface,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    EntryStoreInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger("emi_tracker.storage")


# Column mappings for Entries sheet
ENTRY_COLUMNS = [
    "id",
    "owner_id",
    "created_at",
    "date",
    "kind",
    "amount",
    "account",
    "account_id",
    "category",
    "description",
    "installment_json",
]

# Column mappings for Accounts sheet
ACCOUNT_COLUMNS = [
    "id",
    "name",
    "category",
    "is_installment",
    "created_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Duplicates and missing rows are answers, not transient failures
sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_entries_sheet(self) -> gspread.Worksheet:
        """Get or create the Entries worksheet."""
        return self._get_or_create_sheet(
            self._settings.entries_sheet_name, ENTRY_COLUMNS, rows=2000
        )

    def get_accounts_sheet(self) -> gspread.Worksheet:
        """Get or create the Accounts worksheet."""
        return self._get_or_create_sheet(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsEntryStore(EntryStoreInterface):
    """
    Google Sheets implementation of the entry store.

    One entry per row. Installment terms are JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        # ids of the last batch whose write raised; it may still have landed
        self._unconfirmed: set[str] = set()

    def _entry_to_row(self, entry: LedgerEntry) -> list:
        """Convert a LedgerEntry to a spreadsheet row."""
        return [
            str(entry.id),
            entry.owner_id,
            entry.created_at.isoformat(),
            entry.date.isoformat(),
            entry.kind.value,
            str(entry.amount),
            entry.account,
            str(entry.account_id) if entry.account_id else "",
            entry.category,
            entry.description,
            entry.installment.model_dump_json() if entry.installment else "",
        ]

    def _row_to_entry(self, row: list) -> LedgerEntry:
        """Convert a spreadsheet row to a LedgerEntry."""
        installment = None
        terms_json = _cell(row, 10)
        if terms_json:
            installment = InstallmentTerms(**json.loads(terms_json))

        return LedgerEntry(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            created_at=datetime.fromisoformat(_cell(row, 2)),
            date=date.fromisoformat(_cell(row, 3)),
            kind=EntryKind(_cell(row, 4)),
            amount=Decimal(_cell(row, 5)),
            account=_cell(row, 6),
            account_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            category=_cell(row, 8, "General"),
            description=_cell(row, 9),
            installment=installment,
        )

    def _existing_ids(self, sheet: gspread.Worksheet) -> set[str]:
        return set(sheet.col_values(1)[1:])

    @sheets_retry
    async def list_entries(
        self,
        account: Optional[str] = None,
        account_id: Optional[UUID] = None,
    ) -> list[LedgerEntry]:
        """List entries, newest first."""
        try:
            sheet = self._client.get_entries_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list entries: {e}")

        entries = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                entry = self._row_to_entry(row)
            except Exception:
                continue  # Skip malformed rows

            if account is not None and entry.account != account:
                continue
            if account_id is not None and entry.account_id != account_id:
                continue
            entries.append(entry)

        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        """Retrieve an entry by its ID."""
        try:
            sheet = self._client.get_entries_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get entry: {e}")

        for row in all_rows:
            if row and row[0] == str(entry_id):
                return self._row_to_entry(row)
        return None

    async def append_entry(self, entry: LedgerEntry) -> bool:
        """Append one entry row."""
        return await self.append_entries([entry])

    @sheets_retry
    async def append_entries(self, entries: list[LedgerEntry]) -> bool:
        """
        Append a batch of entries in a single request.

        A failed request can still have been applied by the server. When
        a retry finds every id of that same batch already present, the
        earlier write is taken as successful instead of a duplicate.
        """
        if not entries:
            return True
        try:
            sheet = self._client.get_entries_sheet()
            existing = self._existing_ids(sheet)
        except Exception as e:
            raise StorageError(f"Failed to save entries: {e}")

        ids = [str(e.id) for e in entries]
        clashes = existing.intersection(ids)
        if clashes and clashes == set(ids) == self._unconfirmed:
            self._unconfirmed = set()
            logger.warning("batch_write_confirmed_on_retry", entry_count=len(ids))
            return True
        if clashes or len(set(ids)) != len(ids):
            raise DuplicateError(f"Entries already exist: {sorted(clashes) or ids}")

        try:
            sheet.append_rows(
                [self._entry_to_row(e) for e in entries],
                value_input_option="RAW",
            )
        except Exception as e:
            self._unconfirmed = set(ids)
            raise StorageError(f"Failed to save entries: {e}")
        self._unconfirmed = set()
        return True

    @sheets_retry
    async def remove_entry(self, entry_id: UUID) -> bool:
        """Delete an entry row by ID."""
        try:
            sheet = self._client.get_entries_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == str(entry_id):
                    sheet.delete_rows(idx)
                    return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete entry: {e}")


class GoogleSheetsAccountRegistry(AccountRegistryInterface):
    """
    Google Sheets implementation of the account registry.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _account_to_row(self, account: Account) -> list:
        return [
            str(account.id),
            account.name,
            account.category.value,
            str(account.is_installment),
            account.created_at.isoformat(),
        ]

    def _row_to_account(self, row: list) -> Account:
        return Account(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            category=AccountCategory(_cell(row, 2, "checking")),
            is_installment=_cell(row, 3).lower() == "true",
            created_at=datetime.fromisoformat(_cell(row, 4)),
        )

    def _load(self) -> list[tuple[int, Account]]:
        """All accounts with their sheet row numbers."""
        try:
            sheet = self._client.get_accounts_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read accounts: {e}")

        accounts = []
        for idx, row in enumerate(all_rows[1:], start=2):
            if not row or not row[0]:
                continue
            try:
                accounts.append((idx, self._row_to_account(row)))
            except Exception:
                continue
        return accounts

    def _name_taken(
        self,
        accounts: list[tuple[int, Account]],
        name: str,
        exclude: Optional[UUID] = None,
    ) -> bool:
        wanted = name.strip().lower()
        return any(
            a.name.lower() == wanted and a.id != exclude for _, a in accounts
        )

    async def get_account(self, name: str) -> Optional[Account]:
        for _, account in self._load():
            if account.name == name:
                return account
        return None

    async def get_account_by_id(self, account_id: UUID) -> Optional[Account]:
        for _, account in self._load():
            if account.id == account_id:
                return account
        return None

    async def list_accounts(self) -> list[Account]:
        accounts = [a for _, a in self._load()]
        accounts.sort(key=lambda a: a.created_at, reverse=True)
        return accounts

    @sheets_retry
    async def save_account(self, account: Account) -> bool:
        accounts = self._load()
        if any(a.id == account.id for _, a in accounts) or self._name_taken(
            accounts, account.name
        ):
            raise DuplicateError(f"Account already exists: {account.name}")
        try:
            sheet = self._client.get_accounts_sheet()
            sheet.append_row(self._account_to_row(account), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save account: {e}")

    @sheets_retry
    async def rename_account(self, account_id: UUID, new_name: str) -> Account:
        accounts = self._load()
        if self._name_taken(accounts, new_name, exclude=account_id):
            raise DuplicateError(f"Account already exists: {new_name}")

        for idx, account in accounts:
            if account.id == account_id:
                renamed = account.rename(new_name)
                try:
                    sheet = self._client.get_accounts_sheet()
                    sheet.update_cell(idx, ACCOUNT_COLUMNS.index("name") + 1, renamed.name)
                except Exception as e:
                    raise StorageError(f"Failed to rename account: {e}")
                return renamed

        raise NotFoundError(f"Account not found: {account_id}")

    @sheets_retry
    async def delete_account(self, account_id: UUID) -> bool:
        for idx, account in self._load():
            if account.id == account_id:
                try:
                    self._client.get_accounts_sheet().delete_rows(idx)
                except Exception as e:
                    raise StorageError(f"Failed to delete account: {e}")
                return True
        return False


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=UUID(_cell(row, 5)) if _cell(row, 5) else None,
            correlation_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_cell(row, 10).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @sheets_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
