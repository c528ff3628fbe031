"""
Shared fixtures for the EMI Tracker tests.

No test touches Google Sheets or the network; storage is in memory
or a mocked worksheet.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from emi_tracker.config import get_settings
from emi_tracker.models.ledger import (
    Account,
    EntryKind,
    InstallmentTerms,
    LedgerEntry,
)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Each test sees default settings, regardless of the local environment."""
    for name in ("OWNER_ID", "CURRENCY_SYMBOL", "DEFAULT_SCHEDULE_COUNT",
                 "DEFAULT_FREQUENCY", "DEFAULT_CATEGORY", "MAX_ENTRY_AMOUNT",
                 "FUTURE_DATE_TOLERANCE_DAYS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def loan_account():
    return Account(name="Car Loan", is_installment=True)


@pytest.fixture
def savings_account():
    return Account(name="Savings")


@pytest.fixture
def make_entry():
    """Factory for persisted entries with sensible defaults."""

    def _make(
        amount,
        kind=EntryKind.CASH_OUT,
        on=date(2025, 1, 15),
        account=None,
        description="",
        created_at=None,
        installment=None,
    ):
        if isinstance(account, Account):
            fields = {"account": account.name, "account_id": account.id}
        else:
            fields = {"account": account or "Car Loan"}
        return LedgerEntry(
            owner_id="tester",
            amount=Decimal(str(amount)),
            kind=kind,
            date=on,
            description=description,
            created_at=created_at or datetime(2025, 1, 15, 10, 0, 0),
            installment=installment,
            **fields,
        )

    return _make


@pytest.fixture
def loan_cash_in(make_entry, loan_account):
    """A 1200 loan taken on 15 Jan 2025, repaid over 12 monthly EMIs."""
    return make_entry(
        1200,
        kind=EntryKind.CASH_IN,
        on=date(2025, 1, 15),
        account=loan_account,
        description="Loan (EMI 12 x 100.00)",
        installment=InstallmentTerms(
            period_count=12,
            per_period_amount=Decimal("100"),
        ),
    )
