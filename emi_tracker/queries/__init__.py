"""Ledger query package."""

from emi_tracker.queries.executor import (
    AccountSummary,
    LedgerOverview,
    LedgerQueryExecutor,
    QueryExecutionError,
)

__all__ = [
    "AccountSummary",
    "LedgerOverview",
    "LedgerQueryExecutor",
    "QueryExecutionError",
]
