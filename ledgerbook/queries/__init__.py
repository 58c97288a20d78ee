"""Read-side query package."""

from ledgerbook.queries.facade import (
    LedgerQueryFacade,
    filter_transactions,
    project_expenses,
    project_transactions,
)

__all__ = [
    "LedgerQueryFacade",
    "filter_transactions",
    "project_expenses",
    "project_transactions",
]
