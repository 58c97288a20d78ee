"""
Ledger Query Facade

DESIGN DECISION: Every figure a screen shows is DERIVED on demand.
The facade reads the journal, hands it to the aggregator and projects
the result into a view model. Nothing is cached and nothing is stored,
so a report can never disagree with the entries behind it.

The facade is read-only. It never writes to the ledger.

BEST-EFFORT READS:
A caller that prefers an empty screen over an error passes
best_effort=True. A storage failure then yields an empty snapshot with
degraded=True (logged and audited). A genuinely empty ledger yields the
same empty figures with degraded=False, so the two are never confused.
Without best_effort the StorageError propagates.
"""

from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Optional, TypeVar
from uuid import UUID

import structlog

from ledgerbook.accounts.registry import AccountRegistry
from ledgerbook.audit.logger import AuditLogger
from ledgerbook.config import LedgerSettings, get_settings
from ledgerbook.journal.recorder import JournalRecorder
from ledgerbook.ledger.aggregator import (
    account_balances,
    aggregate,
    year_range,
)
from ledgerbook.models.ledger import ZERO, AccountType, JournalEntry
from ledgerbook.models.reports import (
    BankAccountSummary,
    BankingSnapshot,
    CategoryTotal,
    DashboardSnapshot,
    ExpenseList,
    MonthlyBucket,
    QuarterlyBucket,
    ReportSnapshot,
    SnapshotBase,
    TransactionFilters,
    TransactionList,
    TransactionRow,
    TransactionStatus,
)
from ledgerbook.services.storage import StorageError


logger = structlog.get_logger(__name__)

SnapshotT = TypeVar("SnapshotT", bound=SnapshotBase)


# =============================================================================
# PROJECTIONS
# =============================================================================

def project_transactions(
    entries: Iterable[JournalEntry],
    status: TransactionStatus = TransactionStatus.RECONCILED,
) -> list[TransactionRow]:
    """
    Project journal lines as bank-statement style transactions.

    Debits show as negative amounts, credits as positive. Lines whose
    account could not be resolved have no category and are left out.
    """
    rows = []
    for entry in entries:
        for line in entry.lines:
            if line.account_name is None:
                continue
            rows.append(TransactionRow(
                id=f"{entry.id}-{line.id}",
                entry_id=entry.id,
                line_id=line.id,
                date=entry.entry_date,
                description=entry.description,
                reference=entry.reference,
                amount=-line.debit if line.debit > 0 else line.credit,
                category=line.account_name,
                account_id=line.account_id,
                account_type=line.account_type,
                status=status,
            ))
    return rows


def project_expenses(entries: Iterable[JournalEntry]) -> list[TransactionRow]:
    """Project expense-account debit lines; amounts are positive."""
    rows = []
    for entry in entries:
        for line in entry.lines:
            if line.account_type != AccountType.EXPENSE or line.debit <= 0:
                continue
            rows.append(TransactionRow(
                id=f"{entry.id}-{line.id}",
                entry_id=entry.id,
                line_id=line.id,
                date=entry.entry_date,
                description=entry.description,
                reference=entry.reference,
                amount=line.debit,
                category=line.account_name or str(line.account_id),
                account_id=line.account_id,
                account_type=line.account_type,
                status=TransactionStatus.APPROVED,
            ))
    return rows


def filter_transactions(
    rows: Iterable[TransactionRow],
    filters: TransactionFilters,
) -> list[TransactionRow]:
    """Apply search, status, category and account type filters."""
    search = filters.search.strip().lower() if filters.search else None
    result = []
    for row in rows:
        if search and search not in row.description.lower():
            continue
        if filters.status != "all" and row.status != filters.status:
            continue
        if filters.category and row.category != filters.category:
            continue
        if filters.account_type is not None and row.account_type != filters.account_type:
            continue
        result.append(row)
    return result


def _inflow(rows: Iterable[TransactionRow]) -> Decimal:
    return sum((row.amount for row in rows if row.amount > 0), ZERO)


def _outflow(rows: Iterable[TransactionRow]) -> Decimal:
    return sum((-row.amount for row in rows if row.amount < 0), ZERO)


def _reconciled(rows: Iterable[TransactionRow]) -> int:
    return sum(1 for row in rows if row.status == TransactionStatus.RECONCILED)


def _empty_months(year: int) -> list[MonthlyBucket]:
    return aggregate([], *year_range(year)).monthly


def _empty_quarters(year: int) -> list[QuarterlyBucket]:
    return aggregate([], *year_range(year)).quarterly


# =============================================================================
# FACADE
# =============================================================================

class LedgerQueryFacade:
    """
    Read-side entry points for a presentation layer.

    All methods take an explicit organization_id and return pydantic
    view models.
    """

    def __init__(
        self,
        recorder: JournalRecorder,
        registry: AccountRegistry,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Args:
            recorder: Journal reads
            registry: Chart of accounts reads
            audit_logger: Receives report and degraded-read events, if given
            settings: Display sizes and bank keywords; defaults to environment
            today: Clock for "this month" figures; defaults to date.today
        """
        self._recorder = recorder
        self._registry = registry
        self._audit = audit_logger
        self._settings = settings or get_settings().ledger
        self._today = today or date.today

    async def _run(
        self,
        view: str,
        organization_id: UUID,
        best_effort: bool,
        compute: Callable[[], Awaitable[SnapshotT]],
        empty: Callable[[], SnapshotT],
    ) -> SnapshotT:
        try:
            snapshot = await compute()
        except StorageError as e:
            if not best_effort:
                raise
            logger.warning(
                "best_effort_read_degraded",
                view=view,
                organization_id=str(organization_id),
                error=str(e),
            )
            if self._audit:
                await self._audit.log_best_effort_degraded(
                    organization_id=organization_id,
                    view=view,
                    error_message=str(e),
                )
            snapshot = empty()
            snapshot.degraded = True
            snapshot.degraded_reason = str(e)
            return snapshot

        if self._audit:
            await self._audit.log_report_generated(
                organization_id=organization_id,
                report_type=view,
            )
        return snapshot

    # -------------------------------------------------------------------------
    # Dashboard and reports
    # -------------------------------------------------------------------------

    async def get_dashboard_snapshot(
        self,
        organization_id: UUID,
        year: int,
        *,
        best_effort: bool = False,
    ) -> DashboardSnapshot:
        """
        Key metrics for one calendar year.

        Revenue, expenses, net profit and margin; twelve monthly cash-flow
        buckets; the top expense categories; the most recent transactions.
        """
        async def compute() -> DashboardSnapshot:
            date_from, date_to = year_range(year)
            entries = await self._recorder.list_entries(organization_id, date_from, date_to)
            result = aggregate(
                entries,
                date_from,
                date_to,
                top_n=self._settings.category_breakdown_size,
            )
            recent = project_transactions(entries)[: self._settings.recent_transactions_size]
            return DashboardSnapshot(
                organization_id=organization_id,
                year=year,
                total_revenue=result.total_revenue,
                total_expenses=result.total_expenses,
                net_profit=result.net_profit,
                profit_margin=result.profit_margin,
                cash_flow=result.monthly,
                expense_breakdown=result.category_breakdown,
                recent_transactions=recent,
            )

        return await self._run(
            "dashboard",
            organization_id,
            best_effort,
            compute,
            lambda: DashboardSnapshot(
                organization_id=organization_id,
                year=year,
                cash_flow=_empty_months(year),
            ),
        )

    async def get_report_snapshot(
        self,
        organization_id: UUID,
        year: int,
        *,
        best_effort: bool = False,
    ) -> ReportSnapshot:
        """Profit and loss for one calendar year, by month and by quarter."""
        async def compute() -> ReportSnapshot:
            date_from, date_to = year_range(year)
            entries = await self._recorder.list_entries(organization_id, date_from, date_to)
            result = aggregate(entries, date_from, date_to)
            return ReportSnapshot(
                organization_id=organization_id,
                year=year,
                total_revenue=result.total_revenue,
                total_expenses=result.total_expenses,
                net_profit=result.net_profit,
                profit_margin=result.profit_margin,
                totals_by_type=result.totals_by_type,
                monthly=result.monthly,
                quarterly=result.quarterly,
                has_data=result.has_data,
            )

        return await self._run(
            "report",
            organization_id,
            best_effort,
            compute,
            lambda: ReportSnapshot(
                organization_id=organization_id,
                year=year,
                totals_by_type={account_type: ZERO for account_type in AccountType},
                monthly=_empty_months(year),
                quarterly=_empty_quarters(year),
            ),
        )

    # -------------------------------------------------------------------------
    # Transaction views
    # -------------------------------------------------------------------------

    async def get_transaction_list(
        self,
        organization_id: UUID,
        filters: Optional[TransactionFilters] = None,
        *,
        best_effort: bool = False,
    ) -> TransactionList:
        """
        Journal lines as a filterable transaction list.

        Totals and the reconciled count cover every fetched transaction,
        not just the filtered ones.
        """
        filters = filters or TransactionFilters()

        async def compute() -> TransactionList:
            entries = await self._recorder.list_entries(
                organization_id,
                filters.date_from,
                filters.date_to,
                limit=filters.limit or self._settings.transaction_list_limit,
            )
            rows = project_transactions(entries)
            shown = filter_transactions(rows, filters)
            return TransactionList(
                organization_id=organization_id,
                transactions=shown,
                total_count=len(shown),
                total_inflow=_inflow(rows),
                total_outflow=_outflow(rows),
                reconciled_count=_reconciled(rows),
            )

        return await self._run(
            "transactions",
            organization_id,
            best_effort,
            compute,
            lambda: TransactionList(organization_id=organization_id),
        )

    async def get_banking_snapshot(
        self,
        organization_id: UUID,
        filters: Optional[TransactionFilters] = None,
        *,
        best_effort: bool = False,
    ) -> BankingSnapshot:
        """
        Cash and bank accounts with their balances, plus recent transactions.

        A bank account is an active asset account whose name contains one of
        the configured keywords. Balances cover the full journal history.
        """
        filters = filters or TransactionFilters()

        async def compute() -> BankingSnapshot:
            keywords = self._settings.bank_account_keywords_list
            accounts = await self._registry.get_accounts_by_id(organization_id)
            bank_accounts = sorted(
                (
                    account for account in accounts.values()
                    if account.is_active
                    and account.type == AccountType.ASSET
                    and any(keyword in account.name.lower() for keyword in keywords)
                ),
                key=lambda account: account.code,
            )

            entries = await self._recorder.list_entries(organization_id)
            balances = account_balances(entries)
            summaries = [
                BankAccountSummary(
                    account_id=account.id,
                    code=account.code,
                    name=account.name,
                    balance=balances.get(account.id, ZERO),
                )
                for account in bank_accounts
            ]

            windowed = [
                entry for entry in entries
                if (filters.date_from is None or entry.entry_date >= filters.date_from)
                and (filters.date_to is None or entry.entry_date <= filters.date_to)
            ]
            limit = filters.limit or self._settings.transaction_list_limit
            rows = project_transactions(windowed[:limit])
            return BankingSnapshot(
                organization_id=organization_id,
                bank_accounts=summaries,
                total_balance=sum((s.balance for s in summaries), ZERO),
                transactions=filter_transactions(rows, filters),
                total_inflow=_inflow(rows),
                total_outflow=_outflow(rows),
                reconciled_count=_reconciled(rows),
            )

        return await self._run(
            "banking",
            organization_id,
            best_effort,
            compute,
            lambda: BankingSnapshot(organization_id=organization_id),
        )

    async def get_expense_list(
        self,
        organization_id: UUID,
        filters: Optional[TransactionFilters] = None,
        *,
        best_effort: bool = False,
    ) -> ExpenseList:
        """
        Expense-account debits with their total and category mix.

        The total, breakdown and monthly count cover every expense line;
        filters only narrow the returned list.
        """
        filters = filters or TransactionFilters()

        async def compute() -> ExpenseList:
            entries = await self._recorder.list_entries(
                organization_id,
                filters.date_from,
                filters.date_to,
                limit=filters.limit,
            )
            rows = project_expenses(entries)

            totals: dict[str, Decimal] = {}
            for row in rows:
                totals[row.category] = totals.get(row.category, ZERO) + row.amount
            breakdown = [
                CategoryTotal(name=name, total=total)
                for name, total in sorted(totals.items(), key=lambda item: (-item[1], item[0]))
            ][: self._settings.category_breakdown_size]

            today = self._today()
            this_month = (today.year, today.month)
            return ExpenseList(
                organization_id=organization_id,
                expenses=filter_transactions(rows, filters),
                total_expenses=sum((row.amount for row in rows), ZERO),
                category_breakdown=breakdown,
                expenses_this_month=sum(
                    1 for row in rows if (row.date.year, row.date.month) == this_month
                ),
            )

        return await self._run(
            "expenses",
            organization_id,
            best_effort,
            compute,
            lambda: ExpenseList(organization_id=organization_id),
        )
