"""Chart of accounts package."""

from ledgerbook.accounts.registry import (
    DEFAULT_CHART,
    AccountRegistry,
    account_from_row,
    build_account_tree,
    would_create_cycle,
)

__all__ = [
    "DEFAULT_CHART",
    "AccountRegistry",
    "account_from_row",
    "build_account_tree",
    "would_create_cycle",
]
