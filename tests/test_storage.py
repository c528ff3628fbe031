"""
Tests for the storage backends.

The in-memory backend is exercised directly. The Google Sheets backend
runs against a MagicMock client; no network calls are made.
"""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from tenacity import stop_after_attempt, wait_none

from emi_tracker.models.audit import AuditEventBuilder
from emi_tracker.models.ledger import (
    Account,
    AccountCategory,
    EntryKind,
    InstallmentTerms,
)
from emi_tracker.services.storage import (
    DuplicateError,
    GoogleSheetsAccountRegistry,
    GoogleSheetsAuditStorage,
    GoogleSheetsEntryStore,
    InMemoryAccountRegistry,
    InMemoryAuditStorage,
    InMemoryEntryStore,
    NotFoundError,
    StorageError,
)
from emi_tracker.services.storage.google_sheets import (
    ACCOUNT_COLUMNS,
    ENTRY_COLUMNS,
)


class TestInMemoryEntryStore:
    """Tests for the in-memory entry store."""

    def test_list_newest_first(self, make_entry):
        """Test entries list newest first."""
        old = make_entry(1, created_at=datetime(2025, 1, 1))
        new = make_entry(2, created_at=datetime(2025, 2, 1))
        store = InMemoryEntryStore([old, new])
        assert asyncio.run(store.list_entries()) == [new, old]

    def test_filters(self, make_entry, loan_account):
        """Test filtering by account name and id."""
        by_id = make_entry(1, account=loan_account)
        legacy = make_entry(2, account="Car Loan")
        other = make_entry(3, account="Other")
        store = InMemoryEntryStore([by_id, legacy, other])

        assert len(asyncio.run(store.list_entries(account="Car Loan"))) == 2
        assert asyncio.run(store.list_entries(account_id=loan_account.id)) == [by_id]

    def test_append_and_get(self, make_entry):
        """Test appending and fetching an entry."""
        store = InMemoryEntryStore()
        entry = make_entry(10)
        assert asyncio.run(store.append_entry(entry)) is True
        assert asyncio.run(store.get_entry(entry.id)) == entry

    def test_append_duplicate(self, make_entry):
        """Test appending a duplicate id."""
        entry = make_entry(10)
        store = InMemoryEntryStore([entry])
        with pytest.raises(DuplicateError):
            asyncio.run(store.append_entry(entry))

    def test_batch_is_all_or_nothing(self, make_entry):
        """Test a batch with one duplicate writes nothing."""
        existing = make_entry(10)
        store = InMemoryEntryStore([existing])
        batch = [make_entry(1), existing, make_entry(2)]

        with pytest.raises(DuplicateError):
            asyncio.run(store.append_entries(batch))
        assert asyncio.run(store.list_entries()) == [existing]

    def test_remove(self, make_entry):
        """Test removing an entry."""
        entry = make_entry(10)
        store = InMemoryEntryStore([entry])
        assert asyncio.run(store.remove_entry(entry.id)) is True
        assert asyncio.run(store.remove_entry(entry.id)) is False
        assert asyncio.run(store.get_entry(entry.id)) is None


class TestInMemoryAccountRegistry:
    """Tests for the in-memory account registry."""

    def test_save_and_lookup(self, loan_account):
        """Test saving and looking up accounts."""
        registry = InMemoryAccountRegistry()
        asyncio.run(registry.save_account(loan_account))
        assert asyncio.run(registry.get_account("Car Loan")) == loan_account
        assert asyncio.run(registry.get_account_by_id(loan_account.id)) == loan_account
        assert asyncio.run(registry.get_account("Nope")) is None

    def test_name_clash_is_case_insensitive(self, loan_account):
        """Test name clashes ignore case."""
        registry = InMemoryAccountRegistry([loan_account])
        with pytest.raises(DuplicateError):
            asyncio.run(registry.save_account(Account(name="car loan")))

    def test_rename(self, loan_account, savings_account):
        """Test renaming accounts."""
        registry = InMemoryAccountRegistry([loan_account, savings_account])
        renamed = asyncio.run(registry.rename_account(loan_account.id, "Auto Loan"))

        assert renamed.id == loan_account.id
        assert asyncio.run(registry.get_account("Auto Loan")) == renamed
        assert asyncio.run(registry.get_account("Car Loan")) is None

        with pytest.raises(DuplicateError):
            asyncio.run(registry.rename_account(loan_account.id, "Savings"))
        with pytest.raises(NotFoundError):
            asyncio.run(registry.rename_account(uuid4(), "Anything"))

    def test_list_and_delete(self, loan_account):
        """Test listing and deleting accounts."""
        older = Account(name="Old", created_at=datetime(2020, 1, 1))
        registry = InMemoryAccountRegistry([older, loan_account])
        assert asyncio.run(registry.list_accounts()) == [loan_account, older]
        assert asyncio.run(registry.delete_account(older.id)) is True
        assert asyncio.run(registry.delete_account(older.id)) is False


class TestInMemoryAuditStorage:
    """Tests for the in-memory audit store."""

    def test_correlation_and_recent(self):
        """Test correlation lookup and recent events."""
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        first = AuditEventBuilder.account_deleted(uuid4(), "A", correlation_id=correlation_id)
        second = AuditEventBuilder.account_deleted(uuid4(), "B")
        asyncio.run(storage.append_event(first))
        asyncio.run(storage.append_event(second))

        assert asyncio.run(storage.get_events_by_correlation_id(correlation_id)) == [first]
        assert len(asyncio.run(storage.get_recent_events(limit=1))) == 1
        assert storage.events == [first, second]


# =============================================================================
# GOOGLE SHEETS (mocked)
# =============================================================================

@pytest.fixture
def sheet():
    worksheet = MagicMock()
    worksheet.get_all_values.return_value = [ENTRY_COLUMNS]
    worksheet.col_values.return_value = ["id"]
    return worksheet


@pytest.fixture
def client(sheet):
    sheets_client = MagicMock()
    sheets_client.get_entries_sheet.return_value = sheet
    sheets_client.get_accounts_sheet.return_value = sheet
    sheets_client.get_audit_sheet.return_value = sheet
    return sheets_client


@pytest.fixture
def no_retry_wait(monkeypatch):
    """Fail fast instead of backing off between attempts."""
    for method in (
        GoogleSheetsEntryStore.append_entries,
        GoogleSheetsEntryStore.list_entries,
    ):
        monkeypatch.setattr(method.retry, "wait", wait_none())
        monkeypatch.setattr(method.retry, "stop", stop_after_attempt(1))


class TestGoogleSheetsEntryStore:
    """Tests for the Sheets entry store."""

    def test_row_round_trip(self, client, make_entry, loan_account):
        """Test entry to row conversion and back."""
        store = GoogleSheetsEntryStore(client)
        entry = make_entry(
            1200,
            kind=EntryKind.CASH_IN,
            account=loan_account,
            description="Loan (EMI 12 x 100.00)",
            installment=InstallmentTerms(period_count=12, per_period_amount=Decimal("100")),
        )
        row = store._entry_to_row(entry)

        assert len(row) == len(ENTRY_COLUMNS)
        assert json.loads(row[10])["period_count"] == 12
        assert store._row_to_entry(row) == entry

    def test_list_skips_blank_and_malformed_rows(self, client, sheet, make_entry):
        """Test bad rows are skipped."""
        store = GoogleSheetsEntryStore(client)
        good = make_entry(5, account="Wallet")
        sheet.get_all_values.return_value = [
            ENTRY_COLUMNS,
            store._entry_to_row(good),
            [],
            ["not-a-uuid", "x"],
        ]
        assert asyncio.run(store.list_entries()) == [good]
        assert asyncio.run(store.list_entries(account="Other")) == []

    def test_legacy_row_without_account_id(self, client, sheet):
        """Test rows written before account ids existed."""
        store = GoogleSheetsEntryStore(client)
        entry_id = str(uuid4())
        sheet.get_all_values.return_value = [
            ENTRY_COLUMNS,
            [entry_id, "u1", "2025-01-01T00:00:00", "2025-01-01", "CASH_IN",
             "1200", "Car Loan", "", "", "Loan EMI 12"],
        ]
        [entry] = asyncio.run(store.list_entries())
        assert entry.account_id is None
        assert entry.category == "General"
        assert entry.installment is None

    def test_batch_written_in_one_request(self, client, sheet, make_entry):
        """Test a batch is one append_rows call."""
        store = GoogleSheetsEntryStore(client)
        batch = [make_entry(100, on=date(2025, m, 1)) for m in (2, 3, 4)]

        assert asyncio.run(store.append_entries(batch)) is True
        sheet.append_rows.assert_called_once()
        rows = sheet.append_rows.call_args[0][0]
        assert [r[3] for r in rows] == ["2025-02-01", "2025-03-01", "2025-04-01"]

    def test_duplicate_id_rejected_before_write(self, client, sheet, make_entry):
        """Test duplicate ids are caught before writing."""
        store = GoogleSheetsEntryStore(client)
        entry = make_entry(100)
        sheet.col_values.return_value = ["id", str(entry.id)]

        with pytest.raises(DuplicateError):
            asyncio.run(store.append_entries([make_entry(1), entry]))
        sheet.append_rows.assert_not_called()

    def test_write_failure_is_storage_error(self, client, sheet, make_entry, no_retry_wait):
        """Test API failures surface as StorageError."""
        store = GoogleSheetsEntryStore(client)
        sheet.append_rows.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(StorageError, match="quota exceeded"):
            asyncio.run(store.append_entries([make_entry(1)]))

    def test_retry_after_applied_write_succeeds(self, client, sheet, make_entry, monkeypatch):
        """A timed-out write that landed is not reported as a duplicate on retry."""
        monkeypatch.setattr(GoogleSheetsEntryStore.append_entries.retry, "wait", wait_none())
        store = GoogleSheetsEntryStore(client)
        batch = [make_entry(100), make_entry(200)]
        sheet.col_values.side_effect = [["id"], ["id"] + [str(e.id) for e in batch]]
        sheet.append_rows.side_effect = RuntimeError("read timed out")

        assert asyncio.run(store.append_entries(batch)) is True
        sheet.append_rows.assert_called_once()

    def test_fresh_duplicate_batch_still_rejected(self, client, sheet, make_entry):
        """Only the batch whose write failed is treated as already applied."""
        store = GoogleSheetsEntryStore(client)
        entry = make_entry(100)
        sheet.col_values.return_value = ["id", str(entry.id)]

        with pytest.raises(DuplicateError):
            asyncio.run(store.append_entries([entry]))

    def test_remove_deletes_matching_row(self, client, sheet, make_entry):
        """Test removing an entry row."""
        store = GoogleSheetsEntryStore(client)
        first, second = make_entry(1), make_entry(2)
        sheet.get_all_values.return_value = [
            ENTRY_COLUMNS,
            store._entry_to_row(first),
            store._entry_to_row(second),
        ]
        assert asyncio.run(store.remove_entry(second.id)) is True
        sheet.delete_rows.assert_called_once_with(3)
        assert asyncio.run(store.remove_entry(uuid4())) is False


class TestGoogleSheetsAccountRegistry:
    """Tests for the Sheets account registry."""

    def _rows(self, registry, *accounts):
        return [ACCOUNT_COLUMNS] + [registry._account_to_row(a) for a in accounts]

    def test_lookup(self, client, sheet, loan_account):
        """Test account lookup by name."""
        registry = GoogleSheetsAccountRegistry(client)
        sheet.get_all_values.return_value = self._rows(registry, loan_account)

        found = asyncio.run(registry.get_account("Car Loan"))
        assert found == loan_account
        assert found.is_installment is True

    def test_save_rejects_name_clash(self, client, sheet, loan_account):
        """Test saving a clashing name."""
        registry = GoogleSheetsAccountRegistry(client)
        sheet.get_all_values.return_value = self._rows(registry, loan_account)

        with pytest.raises(DuplicateError):
            asyncio.run(registry.save_account(Account(name="CAR LOAN")))
        sheet.append_row.assert_not_called()

    def test_save(self, client, sheet):
        """Test saving an account row."""
        registry = GoogleSheetsAccountRegistry(client)
        sheet.get_all_values.return_value = [ACCOUNT_COLUMNS]
        account = Account(name="Wallet", category=AccountCategory.CASH)

        asyncio.run(registry.save_account(account))
        row = sheet.append_row.call_args[0][0]
        assert row[1] == "Wallet"
        assert row[2] == "cash"

    def test_rename_updates_name_cell(self, client, sheet, loan_account, savings_account):
        """Test rename updates only the name cell."""
        registry = GoogleSheetsAccountRegistry(client)
        sheet.get_all_values.return_value = self._rows(registry, savings_account, loan_account)

        renamed = asyncio.run(registry.rename_account(loan_account.id, "Auto Loan"))
        assert renamed.name == "Auto Loan"
        sheet.update_cell.assert_called_once_with(3, 2, "Auto Loan")

    def test_rename_missing(self, client, sheet):
        """Test renaming a missing account."""
        registry = GoogleSheetsAccountRegistry(client)
        sheet.get_all_values.return_value = [ACCOUNT_COLUMNS]
        with pytest.raises(NotFoundError):
            asyncio.run(registry.rename_account(uuid4(), "X"))


class TestGoogleSheetsAuditStorage:
    """Tests for the Sheets audit store."""

    def test_append_and_read_back(self, client, sheet):
        """Test appending and reading an audit event."""
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.cash_in_recorded(
            entry_id=uuid4(),
            account="Car Loan",
            amount=Decimal("1200"),
            period_count=12,
            correlation_id=uuid4(),
        )
        asyncio.run(storage.append_event(event))
        row = sheet.append_row.call_args[0][0]

        sheet.get_all_values.return_value = [["header"], row]
        [loaded] = asyncio.run(storage.get_events_by_correlation_id(event.correlation_id))
        assert loaded.event_id == event.event_id
        assert loaded.details["period_count"] == 12
