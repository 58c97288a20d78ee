"""Ledger aggregation package."""

from ledgerbook.ledger.aggregator import (
    MONTH_LABELS,
    account_balance,
    account_balances,
    aggregate,
    month_range,
    profit_margin,
    year_range,
)

__all__ = [
    "MONTH_LABELS",
    "account_balance",
    "account_balances",
    "aggregate",
    "month_range",
    "profit_margin",
    "year_range",
]
