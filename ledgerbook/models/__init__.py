"""
Data Models Package

This package contains all Pydantic models used in Ledgerbook.
All data flowing through the ledger must conform to these schemas.
"""

from ledgerbook.models.ledger import (
    CENT,
    MONEY_PLACES,
    ZERO,
    Account,
    AccountNode,
    AccountType,
    JournalEntry,
    JournalLine,
    JournalLineInput,
    NormalBalance,
    to_money,
)
from ledgerbook.models.reports import (
    AggregateResult,
    BankAccountSummary,
    BankingSnapshot,
    CategoryTotal,
    DashboardSnapshot,
    ExpenseList,
    MonthlyBucket,
    QuarterlyBucket,
    ReportSnapshot,
    TransactionFilters,
    TransactionList,
    TransactionRow,
    TransactionStatus,
)
from ledgerbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CENT",
    "MONEY_PLACES",
    "ZERO",
    "Account",
    "AccountNode",
    "AccountType",
    "JournalEntry",
    "JournalLine",
    "JournalLineInput",
    "NormalBalance",
    "to_money",
    # Report models
    "AggregateResult",
    "BankAccountSummary",
    "BankingSnapshot",
    "CategoryTotal",
    "DashboardSnapshot",
    "ExpenseList",
    "MonthlyBucket",
    "QuarterlyBucket",
    "ReportSnapshot",
    "TransactionFilters",
    "TransactionList",
    "TransactionRow",
    "TransactionStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
