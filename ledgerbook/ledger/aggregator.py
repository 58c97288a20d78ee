"""
Ledger Aggregator

Turns journal entries into totals, monthly and quarterly buckets, expense
categories and account balances.

DESIGN DECISION: Everything here is a pure function over entries that are
already in memory. No storage access, no clock, no caching. The query
facade reads, this module computes, and every read recomputes from the
journal so figures can never drift from their source.

CRITICAL: Signs come from AccountType.signed_delta() and nowhere else.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from ledgerbook.models.ledger import CENT, ZERO, AccountType, JournalEntry
from ledgerbook.models.reports import (
    AggregateResult,
    CategoryTotal,
    MonthlyBucket,
    QuarterlyBucket,
)


MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


# =============================================================================
# DATE RANGES
# =============================================================================

def year_range(year: int) -> tuple[date, date]:
    """First and last day of a calendar year."""
    return date(year, 1, 1), date(year, 12, 31)


def month_range(date_from: date, date_to: date) -> list[tuple[int, int]]:
    """Every (year, month) a date range touches, in order."""
    months = []
    year, month = date_from.year, date_from.month
    while (year, month) <= (date_to.year, date_to.month):
        months.append((year, month))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


def profit_margin(net_profit: Decimal, revenue: Decimal) -> Decimal:
    """Net profit as a percentage of revenue; zero when there is no revenue."""
    if revenue <= 0:
        return ZERO
    return (net_profit / revenue * 100).quantize(CENT)


# =============================================================================
# AGGREGATION
# =============================================================================

def _in_range(entry: JournalEntry, date_from: date, date_to: date) -> bool:
    return date_from <= entry.entry_date <= date_to


def aggregate(
    entries: Iterable[JournalEntry],
    date_from: date,
    date_to: date,
    top_n: int = 5,
) -> AggregateResult:
    """
    Aggregate journal entries dated within [date_from, date_to].

    Lines whose account type could not be resolved are skipped and
    counted in skipped_lines. Lines against deactivated accounts count
    like any other.

    Raises:
        ValueError: If date_from is after date_to
    """
    if date_from > date_to:
        raise ValueError(f"date_from {date_from} is after date_to {date_to}")

    totals = {account_type: ZERO for account_type in AccountType}
    inflow: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
    outflow: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
    categories: dict[str, Decimal] = defaultdict(lambda: ZERO)
    entry_count = line_count = skipped = 0

    for entry in entries:
        if not _in_range(entry, date_from, date_to):
            continue
        entry_count += 1
        month_key = (entry.entry_date.year, entry.entry_date.month)

        for line in entry.lines:
            line_count += 1
            account_type = line.account_type
            if account_type is None:
                skipped += 1
                continue

            delta = account_type.signed_delta(line.debit, line.credit)
            totals[account_type] += delta

            if account_type == AccountType.INCOME and delta > 0:
                inflow[month_key] += delta
            elif account_type == AccountType.EXPENSE:
                if delta > 0:
                    outflow[month_key] += delta
                if line.debit > 0:
                    name = line.account_name or line.account_code or str(line.account_id)
                    categories[name] += line.debit

    monthly = [
        MonthlyBucket(
            year=year,
            month=month,
            label=MONTH_LABELS[month - 1],
            inflow=inflow[(year, month)],
            outflow=outflow[(year, month)],
        )
        for year, month in month_range(date_from, date_to)
    ]

    quarters: dict[tuple[int, int], QuarterlyBucket] = {}
    for bucket in monthly:
        quarter = (bucket.month - 1) // 3 + 1
        key = (bucket.year, quarter)
        if key not in quarters:
            quarters[key] = QuarterlyBucket(
                year=bucket.year,
                quarter=quarter,
                label=f"Q{quarter}",
            )
        quarters[key].revenue += bucket.inflow
        quarters[key].expenses += bucket.outflow

    # Largest first; equal totals fall back to name so the order is stable
    category_totals = [
        CategoryTotal(name=name, total=total)
        for name, total in sorted(categories.items(), key=lambda item: (-item[1], item[0]))
    ]

    revenue = totals[AccountType.INCOME]
    expenses = totals[AccountType.EXPENSE]
    net = revenue - expenses

    return AggregateResult(
        date_from=date_from,
        date_to=date_to,
        totals_by_type=totals,
        total_revenue=revenue,
        total_expenses=expenses,
        net_profit=net,
        profit_margin=profit_margin(net, revenue),
        monthly=monthly,
        quarterly=list(quarters.values()),
        category_totals=category_totals,
        category_breakdown=category_totals[:top_n],
        entry_count=entry_count,
        line_count=line_count,
        skipped_lines=skipped,
    )


# =============================================================================
# BALANCES
# =============================================================================

def account_balances(
    entries: Iterable[JournalEntry],
    as_of: Optional[date] = None,
) -> dict[UUID, Decimal]:
    """
    Running balance of every account over the full history.

    There is no lower date bound: a balance is everything ever posted.
    as_of optionally stops the scan at a date (inclusive).
    """
    balances: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    for entry in entries:
        if as_of is not None and entry.entry_date > as_of:
            continue
        for line in entry.lines:
            if line.account_type is None:
                continue
            balances[line.account_id] += line.account_type.signed_delta(
                line.debit, line.credit
            )
    return dict(balances)


def account_balance(
    entries: Iterable[JournalEntry],
    account_id: UUID,
    as_of: Optional[date] = None,
) -> Decimal:
    """Running balance of one account."""
    return account_balances(entries, as_of=as_of).get(account_id, ZERO)
