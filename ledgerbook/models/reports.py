"""
Report and View Models

Everything the read side hands to a presentation layer. These are
computed on demand from journal lines and never persisted.

DESIGN DECISION: Snapshots carry a `degraded` flag. A best-effort read
that hit a storage failure returns an empty snapshot with degraded=True,
so "no data" and "could not load data" are never confused.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from ledgerbook.models.ledger import ZERO, AccountType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# AGGREGATION RESULTS
# =============================================================================

class MonthlyBucket(BaseModel):
    """Income and expense activity for one calendar month."""

    year: int
    month: int = Field(ge=1, le=12)
    label: str = Field(..., description="Short month name, e.g. 'Jan'")
    inflow: Decimal = ZERO
    outflow: Decimal = ZERO

    @computed_field
    @property
    def profit(self) -> Decimal:
        return self.inflow - self.outflow


class QuarterlyBucket(BaseModel):
    """Monthly buckets rolled up to a calendar quarter."""

    year: int
    quarter: int = Field(ge=1, le=4)
    label: str = Field(..., description="'Q1' .. 'Q4'")
    revenue: Decimal = ZERO
    expenses: Decimal = ZERO

    @computed_field
    @property
    def profit(self) -> Decimal:
        return self.revenue - self.expenses


class CategoryTotal(BaseModel):
    """Total debits against one expense account."""

    name: str
    total: Decimal


class AggregateResult(BaseModel):
    """
    Output of the ledger aggregator for one date range.

    totals_by_type always has every AccountType as a key.
    """

    date_from: date
    date_to: date
    totals_by_type: dict[AccountType, Decimal] = Field(default_factory=dict)
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_margin: Decimal = Field(
        default=ZERO,
        description="Net profit as a percentage of revenue; 0 when there is no revenue"
    )
    monthly: list[MonthlyBucket] = Field(default_factory=list)
    quarterly: list[QuarterlyBucket] = Field(default_factory=list)
    category_totals: list[CategoryTotal] = Field(
        default_factory=list,
        description="All expense categories, largest first"
    )
    category_breakdown: list[CategoryTotal] = Field(
        default_factory=list,
        description="Top-N expense categories for display"
    )
    entry_count: int = Field(default=0, ge=0)
    line_count: int = Field(default=0, ge=0)
    skipped_lines: int = Field(
        default=0,
        ge=0,
        description="Lines whose account could not be resolved"
    )

    @property
    def has_data(self) -> bool:
        return self.total_revenue != 0 or self.total_expenses != 0


# =============================================================================
# TRANSACTION PROJECTIONS
# =============================================================================

class TransactionStatus(str, Enum):
    """
    Presentation-only status flags.

    These are not stored anywhere; projections assign a default.
    """
    RECONCILED = "reconciled"
    PENDING = "pending"
    APPROVED = "approved"


class TransactionRow(BaseModel):
    """One journal line projected as a bank-statement style transaction."""

    id: str = Field(..., description="'{entry_id}-{line_id}'")
    entry_id: UUID
    line_id: UUID
    date: date
    description: str
    reference: Optional[str] = None
    amount: Decimal = Field(
        ...,
        description="Negative for debits, positive for credits"
    )
    category: str = Field(..., description="Account name")
    account_id: UUID
    account_type: Optional[AccountType] = None
    status: TransactionStatus = TransactionStatus.RECONCILED


class TransactionFilters(BaseModel):
    """Caller-facing filters for transaction and expense lists."""

    search: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of the entry description"
    )
    status: Union[Literal["all"], TransactionStatus] = Field(
        default="all",
        description="\"all\" or one status"
    )
    category: Optional[str] = None
    account_type: Optional[AccountType] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: Optional[int] = Field(
        default=None,
        ge=1,
        le=1000,
        description="Entries to fetch; defaults to the configured list limit"
    )


class SnapshotBase(BaseModel):
    """Common fields of everything the query facade returns."""

    organization_id: UUID
    generated_at: datetime = Field(default_factory=_utcnow)
    degraded: bool = False
    degraded_reason: Optional[str] = None


class TransactionList(SnapshotBase):
    """Filtered transactions plus totals over the unfiltered projection."""

    transactions: list[TransactionRow] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)
    total_inflow: Decimal = ZERO
    total_outflow: Decimal = ZERO
    reconciled_count: int = Field(default=0, ge=0)


# =============================================================================
# VIEW SNAPSHOTS
# =============================================================================

class DashboardSnapshot(SnapshotBase):
    """Key metrics, cash flow, expense mix and latest activity for one year."""

    year: int
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_margin: Decimal = ZERO
    cash_flow: list[MonthlyBucket] = Field(default_factory=list)
    expense_breakdown: list[CategoryTotal] = Field(default_factory=list)
    recent_transactions: list[TransactionRow] = Field(default_factory=list)


class ReportSnapshot(SnapshotBase):
    """Profit and loss figures for one year, by month and by quarter."""

    year: int
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_margin: Decimal = ZERO
    totals_by_type: dict[AccountType, Decimal] = Field(default_factory=dict)
    monthly: list[MonthlyBucket] = Field(default_factory=list)
    quarterly: list[QuarterlyBucket] = Field(default_factory=list)
    has_data: bool = False


class BankAccountSummary(BaseModel):
    """A cash or bank account and its running balance."""

    account_id: UUID
    code: str
    name: str
    balance: Decimal = ZERO


class BankingSnapshot(SnapshotBase):
    """Bank accounts with full-history balances and their recent transactions."""

    bank_accounts: list[BankAccountSummary] = Field(default_factory=list)
    total_balance: Decimal = ZERO
    transactions: list[TransactionRow] = Field(default_factory=list)
    total_inflow: Decimal = ZERO
    total_outflow: Decimal = ZERO
    reconciled_count: int = Field(default=0, ge=0)


class ExpenseList(SnapshotBase):
    """Expense lines, their total and category mix."""

    expenses: list[TransactionRow] = Field(default_factory=list)
    total_expenses: Decimal = ZERO
    category_breakdown: list[CategoryTotal] = Field(default_factory=list)
    expenses_this_month: int = Field(default=0, ge=0)
