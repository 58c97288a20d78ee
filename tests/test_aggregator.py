"""
Tests for the ledger aggregator.

The aggregator is pure, so these tests build entries in memory.
"""

import pytest
from datetime import date
from decimal import Decimal

from ledgerbook.ledger import (
    account_balance,
    account_balances,
    aggregate,
    month_range,
    profit_margin,
    year_range,
)
from ledgerbook.models import ZERO, AccountType


@pytest.fixture
def accounts(make_account):
    return {
        "cash": make_account("1000", "Cash", AccountType.ASSET),
        "payable": make_account("2000", "Accounts Payable", AccountType.LIABILITY),
        "equity": make_account("3000", "Owner's Equity", AccountType.EQUITY),
        "sales": make_account("4000", "Sales Revenue", AccountType.INCOME),
        "rent": make_account("6100", "Rent Expense", AccountType.EXPENSE),
        "utilities": make_account("6200", "Utilities Expense", AccountType.EXPENSE),
        "marketing": make_account("6300", "Marketing Expense", AccountType.EXPENSE),
    }


class TestDateRanges:
    """Tests for range helpers."""

    def test_year_range(self):
        """Test calendar year bounds."""
        assert year_range(2024) == (date(2024, 1, 1), date(2024, 12, 31))

    def test_month_range_crosses_year(self):
        """Test that a range spanning new year lists every month in order."""
        months = month_range(date(2023, 11, 15), date(2024, 2, 1))
        assert months == [(2023, 11), (2023, 12), (2024, 1), (2024, 2)]

    def test_month_range_single_day(self):
        """Test a one-day range."""
        assert month_range(date(2024, 5, 5), date(2024, 5, 5)) == [(2024, 5)]


class TestAggregate:
    """Tests for aggregate()."""

    def test_income_and_expense_round_trip(self, make_entry, accounts):
        """Test income 1000 and expense 400 give net 600 and margin 60%."""
        entries = [
            make_entry(date(2024, 3, 10), [
                (accounts["cash"], "1000.00", "0"),
                (accounts["sales"], "0", "1000.00"),
            ]),
            make_entry(date(2024, 3, 20), [
                (accounts["rent"], "400.00", "0"),
                (accounts["cash"], "0", "400.00"),
            ]),
        ]
        result = aggregate(entries, *year_range(2024))

        assert result.total_revenue == Decimal("1000.00")
        assert result.total_expenses == Decimal("400.00")
        assert result.net_profit == Decimal("600.00")
        assert result.profit_margin == Decimal("60.0")
        assert result.totals_by_type[AccountType.ASSET] == Decimal("600.00")
        assert result.entry_count == 2
        assert result.line_count == 4
        assert result.has_data is True

    def test_empty_input_yields_zeros(self):
        """Test that no entries give zero totals and zero-filled buckets."""
        result = aggregate([], *year_range(2024))

        assert result.total_revenue == ZERO
        assert result.total_expenses == ZERO
        assert result.net_profit == ZERO
        assert result.profit_margin == ZERO
        assert set(result.totals_by_type) == set(AccountType)
        assert all(v == ZERO for v in result.totals_by_type.values())
        assert len(result.monthly) == 12
        assert [b.label for b in result.monthly][:3] == ["Jan", "Feb", "Mar"]
        assert all(b.inflow == ZERO and b.outflow == ZERO for b in result.monthly)
        assert [q.label for q in result.quarterly] == ["Q1", "Q2", "Q3", "Q4"]
        assert result.category_breakdown == []
        assert result.has_data is False

    def test_margin_is_zero_without_revenue(self, make_entry, accounts):
        """Test that expenses without revenue never divide by zero."""
        entries = [
            make_entry(date(2024, 1, 5), [
                (accounts["rent"], "500.00", "0"),
                (accounts["cash"], "0", "500.00"),
            ]),
        ]
        result = aggregate(entries, *year_range(2024))
        assert result.net_profit == Decimal("-500.00")
        assert result.profit_margin == ZERO

    def test_out_of_range_entries_are_ignored(self, make_entry, accounts):
        """Test that entries outside the range contribute nothing."""
        entries = [
            make_entry(date(2023, 12, 31), [
                (accounts["cash"], "999.00", "0"),
                (accounts["sales"], "0", "999.00"),
            ]),
            make_entry(date(2024, 1, 1), [
                (accounts["cash"], "10.00", "0"),
                (accounts["sales"], "0", "10.00"),
            ]),
            make_entry(date(2024, 12, 31), [
                (accounts["cash"], "20.00", "0"),
                (accounts["sales"], "0", "20.00"),
            ]),
        ]
        result = aggregate(entries, *year_range(2024))
        assert result.total_revenue == Decimal("30.00")
        assert result.entry_count == 2

    def test_monthly_and_quarterly_buckets(self, make_entry, accounts):
        """Test that activity lands in the right month and quarter."""
        entries = [
            make_entry(date(2024, 2, 1), [
                (accounts["cash"], "300.00", "0"),
                (accounts["sales"], "0", "300.00"),
            ]),
            make_entry(date(2024, 5, 1), [
                (accounts["utilities"], "120.00", "0"),
                (accounts["cash"], "0", "120.00"),
            ]),
        ]
        result = aggregate(entries, *year_range(2024))

        feb = result.monthly[1]
        assert (feb.month, feb.inflow, feb.outflow, feb.profit) == (
            2, Decimal("300.00"), ZERO, Decimal("300.00")
        )
        may = result.monthly[4]
        assert may.outflow == Decimal("120.00")
        assert result.quarterly[0].revenue == Decimal("300.00")
        assert result.quarterly[1].expenses == Decimal("120.00")
        assert result.quarterly[1].profit == Decimal("-120.00")

    def test_income_refund_reduces_revenue_not_inflow(self, make_entry, accounts):
        """Test that a debit to income lowers the total but adds no inflow."""
        entries = [
            make_entry(date(2024, 4, 1), [
                (accounts["cash"], "500.00", "0"),
                (accounts["sales"], "0", "500.00"),
            ]),
            make_entry(date(2024, 4, 2), [
                (accounts["sales"], "50.00", "0"),
                (accounts["cash"], "0", "50.00"),
            ]),
        ]
        result = aggregate(entries, *year_range(2024))
        assert result.total_revenue == Decimal("450.00")
        assert result.monthly[3].inflow == Decimal("500.00")

    def test_category_breakdown_top_n_with_name_tiebreak(self, make_entry, accounts, make_account):
        """Test ordering by total descending, then name ascending, cut at top_n."""
        extra = [
            make_account("6400", "Insurance", AccountType.EXPENSE),
            make_account("6500", "Travel", AccountType.EXPENSE),
            make_account("6600", "Software", AccountType.EXPENSE),
        ]
        lines = [
            (accounts["rent"], "900.00", "0"),
            (accounts["utilities"], "100.00", "0"),
            (accounts["marketing"], "100.00", "0"),
            (extra[0], "100.00", "0"),
            (extra[1], "50.00", "0"),
            (extra[2], "75.00", "0"),
            (accounts["cash"], "0", "1325.00"),
        ]
        result = aggregate([make_entry(date(2024, 6, 1), lines)], *year_range(2024), top_n=3)

        assert [c.name for c in result.category_totals] == [
            "Rent Expense",
            "Insurance",
            "Marketing Expense",
            "Utilities Expense",
            "Software",
            "Travel",
        ]
        assert [c.name for c in result.category_breakdown] == [
            "Rent Expense",
            "Insurance",
            "Marketing Expense",
        ]

    def test_unresolved_lines_are_skipped(self, make_entry, accounts):
        """Test that lines without an account type are counted, not summed."""
        entries = [
            make_entry(date(2024, 7, 1), [
                (accounts["cash"], "80.00", "0"),
                (None, "0", "80.00"),
            ]),
        ]
        result = aggregate(entries, *year_range(2024))
        assert result.skipped_lines == 1
        assert result.totals_by_type[AccountType.ASSET] == Decimal("80.00")
        assert result.total_revenue == ZERO

    def test_inactive_accounts_still_count(self, make_entry, make_account, accounts):
        """Test that deactivated accounts keep their history."""
        old_sales = make_account("4900", "Old Sales", AccountType.INCOME, is_active=False)
        entries = [
            make_entry(date(2024, 8, 1), [
                (accounts["cash"], "70.00", "0"),
                (old_sales, "0", "70.00"),
            ]),
        ]
        assert aggregate(entries, *year_range(2024)).total_revenue == Decimal("70.00")

    def test_inverted_range_is_rejected(self):
        """Test that date_from after date_to raises."""
        with pytest.raises(ValueError):
            aggregate([], date(2024, 2, 1), date(2024, 1, 1))


class TestProfitMargin:
    """Tests for profit_margin()."""

    def test_percent_quantized(self):
        """Test that the margin is a percentage at two places."""
        assert profit_margin(Decimal("1"), Decimal("3")) == Decimal("33.33")

    def test_negative_revenue(self):
        """Test that non-positive revenue gives zero."""
        assert profit_margin(Decimal("10"), Decimal("-5")) == ZERO


class TestBalances:
    """Tests for account balances."""

    def test_full_history_balances(self, make_entry, accounts):
        """Test that balances span every year and follow the sign convention."""
        entries = [
            make_entry(date(2022, 1, 1), [
                (accounts["cash"], "5000.00", "0"),
                (accounts["equity"], "0", "5000.00"),
            ]),
            make_entry(date(2024, 1, 1), [
                (accounts["rent"], "1200.00", "0"),
                (accounts["cash"], "0", "1000.00"),
                (accounts["payable"], "0", "200.00"),
            ]),
        ]
        balances = account_balances(entries)

        assert balances[accounts["cash"].id] == Decimal("4000.00")
        assert balances[accounts["equity"].id] == Decimal("5000.00")
        assert balances[accounts["payable"].id] == Decimal("200.00")
        assert balances[accounts["rent"].id] == Decimal("1200.00")

    def test_as_of_caps_the_scan(self, make_entry, accounts):
        """Test that as_of excludes later entries."""
        entries = [
            make_entry(date(2024, 1, 1), [
                (accounts["cash"], "100.00", "0"),
                (accounts["sales"], "0", "100.00"),
            ]),
            make_entry(date(2024, 2, 1), [
                (accounts["cash"], "50.00", "0"),
                (accounts["sales"], "0", "50.00"),
            ]),
        ]
        assert account_balance(entries, accounts["cash"].id, as_of=date(2024, 1, 31)) == Decimal("100.00")
        assert account_balance(entries, accounts["cash"].id) == Decimal("150.00")

    def test_unknown_account_balance_is_zero(self, accounts):
        """Test that an account without lines has a zero balance."""
        assert account_balance([], accounts["cash"].id) == ZERO
