"""
Tests for the Google Sheets storage backend.

A fake client stands in for gspread: each worksheet is a list of cell
rows with a header, supporting the calls the backend makes.
"""

import pytest
import pytest_asyncio
from copy import deepcopy
from datetime import date
from uuid import uuid4

from gspread.utils import a1_to_rowcol

from ledgerbook.accounts import AccountRegistry
from ledgerbook.exceptions import AccountInUseError
from ledgerbook.journal import JournalRecorder
from ledgerbook.models import AccountType, AuditEventBuilder
from ledgerbook.models.audit import AUDIT_COLUMNS
from ledgerbook.services.storage import (
    ConstraintViolationError,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    PartialWriteError,
    StorageError,
    StorageUnavailableError,
    Table,
)
from ledgerbook.services.storage.google_sheets import TABLE_COLUMNS


class FakeWorksheet:
    """In-memory stand-in for gspread.Worksheet."""

    def __init__(self, columns):
        self.values = [list(columns)]
        self.fail_append = False
        self.fail_delete = False
        self.update_calls = []

    def get_all_values(self):
        return deepcopy(self.values)

    def append_row(self, cells, value_input_option=None):
        if self.fail_append:
            raise RuntimeError("quota exceeded")
        self.values.append(list(cells))

    def append_rows(self, rows, value_input_option=None):
        if self.fail_append:
            raise RuntimeError("quota exceeded")
        self.values.extend(list(r) for r in rows)

    def update(self, range_name=None, values=None, value_input_option=None):
        self.update_calls.append(range_name)
        start, _ = range_name.split(":")
        row, col = a1_to_rowcol(start)
        for offset, value in enumerate(values[0]):
            self.values[row - 1][col - 1 + offset] = value

    def delete_rows(self, index):
        if self.fail_delete:
            raise RuntimeError("permission denied")
        del self.values[index - 1]


class FakeSheetsClient:
    """Stand-in for GoogleSheetsClient."""

    def __init__(self):
        self.sheets = {table: FakeWorksheet(columns) for table, columns in TABLE_COLUMNS.items()}
        self.audit = FakeWorksheet(AUDIT_COLUMNS)
        self.unavailable = False

    def get_table_sheet(self, table):
        if self.unavailable:
            raise StorageUnavailableError("spreadsheet unreachable")
        if table not in self.sheets:
            raise StorageError(f"Table not stored in Google Sheets: {table.value}")
        return self.sheets[table]

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client():
    return FakeSheetsClient()


@pytest.fixture
def sheets(client):
    return GoogleSheetsLedgerStorage(client, read_attempts=1)


def account_row(org_id, code, parent=None):
    return {
        "id": uuid4(),
        "organization_id": org_id,
        "code": code,
        "name": f"Account {code}",
        "type": AccountType.ASSET,
        "parent_account_id": parent,
        "is_active": True,
    }


def entry_rows(org_id, user_id, debit_account, credit_account, amount="10.00"):
    entry_id = uuid4()
    entry = {
        "id": entry_id,
        "organization_id": org_id,
        "date": date(2024, 1, 1),
        "description": "Sale",
        "created_by": user_id,
    }
    lines = [
        {"id": uuid4(), "entry_id": entry_id, "account_id": debit_account, "debit": amount, "credit": "0"},
        {"id": uuid4(), "entry_id": entry_id, "account_id": credit_account, "debit": "0", "credit": amount},
    ]
    return entry, lines


@pytest_asyncio.fixture
async def two_accounts(sheets, org_id):
    cash = account_row(org_id, "1000")
    sales = account_row(org_id, "4000")
    await sheets.insert(Table.ACCOUNTS, cash)
    await sheets.insert(Table.ACCOUNTS, sales)
    return cash["id"], sales["id"]


class TestRows:
    """Tests for row storage."""

    @pytest.mark.asyncio
    async def test_insert_and_select(self, sheets, client, org_id):
        """Test that rows round-trip through cells."""
        row = account_row(org_id, "1000")
        assert await sheets.insert(Table.ACCOUNTS, row) == row["id"]

        (stored,) = await sheets.select(Table.ACCOUNTS, {"organization_id": org_id})
        assert stored["code"] == "1000"
        assert stored["type"] == "asset"
        assert stored["parent_account_id"] is None
        assert len(client.sheets[Table.ACCOUNTS].values) == 2

    @pytest.mark.asyncio
    async def test_empty_rows_are_skipped(self, sheets, client, org_id):
        """Test that blank sheet rows are ignored."""
        client.sheets[Table.ACCOUNTS].values.append([""] * 9)
        await sheets.insert(Table.ACCOUNTS, account_row(org_id, "1000"))
        assert len(await sheets.select(Table.ACCOUNTS)) == 1

    @pytest.mark.asyncio
    async def test_duplicate_code(self, sheets, org_id):
        """Test that the backend checks unique codes itself."""
        await sheets.insert(Table.ACCOUNTS, account_row(org_id, "1000"))
        with pytest.raises(ConstraintViolationError) as exc:
            await sheets.insert(Table.ACCOUNTS, account_row(org_id, "1000"))
        assert exc.value.constraint == "accounts_organization_id_code_key"

    @pytest.mark.asyncio
    async def test_update_changes_cells(self, sheets, client, org_id):
        """Test that update rewrites the row in a single call."""
        row = account_row(org_id, "1000")
        await sheets.insert(Table.ACCOUNTS, row)

        updated = await sheets.update(Table.ACCOUNTS, row["id"], {"name": "Petty Cash"})

        assert updated["name"] == "Petty Cash"
        sheet = client.sheets[Table.ACCOUNTS]
        assert sheet.values[1][3] == "Petty Cash"
        assert sheet.values[1][2] == "1000"
        # One write for the whole row
        assert sheet.update_calls == ["A2:I2"]

    @pytest.mark.asyncio
    async def test_unavailable_read_is_raised(self, sheets, client):
        """Test that an unreachable sheet surfaces as StorageUnavailableError."""
        client.unavailable = True
        with pytest.raises(StorageUnavailableError):
            await sheets.select(Table.ACCOUNTS)

    @pytest.mark.asyncio
    async def test_table_without_sheet(self, sheets):
        """Test reading a table the spreadsheet does not hold."""
        with pytest.raises(StorageError):
            await sheets.select(Table.ORGANIZATIONS)


class TestInsertEntry:
    """Tests for the entry write ordering."""

    @pytest.mark.asyncio
    async def test_entry_and_lines_visible(self, sheets, org_id, user_id, two_accounts):
        """Test a successful write."""
        cash, sales = two_accounts
        entry, lines = entry_rows(org_id, user_id, cash, sales)

        assert await sheets.insert_entry(entry, lines) == entry["id"]
        assert len(await sheets.select(Table.JOURNAL_ENTRIES)) == 1
        assert len(await sheets.select(Table.JOURNAL_LINES, {"entry_id": entry["id"]})) == 2

    @pytest.mark.asyncio
    async def test_lines_without_entry_are_invisible(self, sheets, client, org_id, user_id, two_accounts):
        """Test that lines whose entry row is missing are never returned."""
        cash, sales = two_accounts
        _, lines = entry_rows(org_id, user_id, cash, sales)
        client.sheets[Table.JOURNAL_LINES].append_rows(
            [[str(line[c]) if c in line else "" for c in TABLE_COLUMNS[Table.JOURNAL_LINES]] for line in lines]
        )

        assert await sheets.select(Table.JOURNAL_LINES) == []

    @pytest.mark.asyncio
    async def test_failed_entry_append_removes_lines(self, sheets, client, org_id, user_id, two_accounts):
        """Test orphan cleanup when the entry row cannot be written."""
        cash, sales = two_accounts
        entry, lines = entry_rows(org_id, user_id, cash, sales)
        client.sheets[Table.JOURNAL_ENTRIES].fail_append = True

        with pytest.raises(StorageError) as exc:
            await sheets.insert_entry(entry, lines)

        assert not isinstance(exc.value, PartialWriteError)
        assert client.sheets[Table.JOURNAL_LINES].values == [TABLE_COLUMNS[Table.JOURNAL_LINES]]

    @pytest.mark.asyncio
    async def test_failed_cleanup_is_partial_write(self, sheets, client, org_id, user_id, two_accounts):
        """Test that a cleanup failure is surfaced as PartialWriteError."""
        cash, sales = two_accounts
        entry, lines = entry_rows(org_id, user_id, cash, sales)
        client.sheets[Table.JOURNAL_ENTRIES].fail_append = True
        client.sheets[Table.JOURNAL_LINES].fail_delete = True

        with pytest.raises(PartialWriteError):
            await sheets.insert_entry(entry, lines)

        # Orphans remain on the sheet but readers never see them
        assert len(client.sheets[Table.JOURNAL_LINES].values) == 3
        assert await sheets.select(Table.JOURNAL_LINES) == []

    @pytest.mark.asyncio
    async def test_invalid_line_writes_nothing(self, sheets, client, org_id, user_id, two_accounts):
        """Test that constraint checks run before any append."""
        cash, _ = two_accounts
        entry, lines = entry_rows(org_id, user_id, cash, uuid4())

        with pytest.raises(ConstraintViolationError):
            await sheets.insert_entry(entry, lines)
        assert len(client.sheets[Table.JOURNAL_LINES].values) == 1
        assert len(client.sheets[Table.JOURNAL_ENTRIES].values) == 1


class TestDelete:
    """Tests for deletes on the sheet."""

    @pytest.mark.asyncio
    async def test_entry_delete_removes_lines(self, sheets, client, org_id, user_id, two_accounts):
        """Test that an entry's lines go with it."""
        cash, sales = two_accounts
        first, first_lines = entry_rows(org_id, user_id, cash, sales)
        second, second_lines = entry_rows(org_id, user_id, cash, sales, "20.00")
        await sheets.insert_entry(first, first_lines)
        await sheets.insert_entry(second, second_lines)

        assert await sheets.delete(Table.JOURNAL_ENTRIES, first["id"]) is True

        remaining = await sheets.select(Table.JOURNAL_LINES)
        assert {r["entry_id"] for r in remaining} == {str(second["id"])}
        assert len(client.sheets[Table.JOURNAL_LINES].values) == 3

    @pytest.mark.asyncio
    async def test_referenced_account_is_restricted(self, sheets, org_id, user_id, two_accounts):
        """Test that an account with lines is not deleted."""
        cash, sales = two_accounts
        await sheets.insert_entry(*entry_rows(org_id, user_id, cash, sales))

        with pytest.raises(ConstraintViolationError):
            await sheets.delete(Table.ACCOUNTS, cash)

    @pytest.mark.asyncio
    async def test_orphan_lines_also_restrict(self, sheets, client, org_id, user_id, two_accounts):
        """Test that lines left by an interrupted write still protect their account."""
        cash, sales = two_accounts
        entry, lines = entry_rows(org_id, user_id, cash, sales)
        client.sheets[Table.JOURNAL_ENTRIES].fail_append = True
        client.sheets[Table.JOURNAL_LINES].fail_delete = True
        with pytest.raises(PartialWriteError):
            await sheets.insert_entry(entry, lines)
        client.sheets[Table.JOURNAL_LINES].fail_delete = False

        with pytest.raises(ConstraintViolationError):
            await sheets.delete(Table.ACCOUNTS, cash)
        assert len(await sheets.select(Table.ACCOUNTS)) == 2

    @pytest.mark.asyncio
    async def test_account_delete_clears_parent(self, sheets, org_id):
        """Test that children of a deleted account become roots."""
        parent = account_row(org_id, "1000")
        await sheets.insert(Table.ACCOUNTS, parent)
        child = account_row(org_id, "1010", parent=parent["id"])
        await sheets.insert(Table.ACCOUNTS, child)

        assert await sheets.delete(Table.ACCOUNTS, parent["id"]) is True
        (remaining,) = await sheets.select(Table.ACCOUNTS)
        assert remaining["id"] == str(child["id"])
        assert remaining["parent_account_id"] is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, sheets):
        """Test deleting an unknown row."""
        assert await sheets.delete(Table.ACCOUNTS, uuid4()) is False


class TestLedgerOnSheets:
    """Tests that run the ledger services on the Sheets backend."""

    @pytest.mark.asyncio
    async def test_record_and_read_back(self, sheets, org_id, user_id):
        """Test that typed values survive the trip through text cells."""
        registry = AccountRegistry(sheets)
        recorder = JournalRecorder(sheets, registry)
        cash = await registry.create_account(org_id, "1000", "Cash", AccountType.ASSET)
        sales = await registry.create_account(org_id, "4000", "Sales", AccountType.INCOME)

        entry = await recorder.record_entry(
            org_id,
            date(2024, 3, 1),
            "Cash sale",
            [
                {"account_id": cash.id, "debit": "19.99"},
                {"account_id": sales.id, "credit": "19.99"},
            ],
            user_id,
        )

        (loaded,) = await recorder.list_entries(org_id)
        assert loaded.id == entry.id
        assert loaded.entry_date == date(2024, 3, 1)
        assert loaded.reference is None
        assert [str(line.debit) for line in loaded.lines if line.debit > 0] == ["19.99"]
        assert {line.account_name for line in loaded.lines} == {"Cash", "Sales"}

        with pytest.raises(AccountInUseError):
            await registry.delete_account(org_id, cash.id)


class TestAuditOnSheets:
    """Tests for GoogleSheetsAuditStorage."""

    @pytest.mark.asyncio
    async def test_append_and_read_back(self, client, org_id):
        """Test that events round-trip through the audit sheet."""
        audit = GoogleSheetsAuditStorage(client)
        correlation_id = uuid4()
        event = AuditEventBuilder.chart_seeded(
            organization_id=org_id,
            account_count=16,
            correlation_id=correlation_id,
        )

        assert await audit.append_event(event) is True
        (loaded,) = await audit.get_events_by_correlation_id(correlation_id)
        assert loaded.event_id == event.event_id
        assert loaded.details == {"account_count": 16}

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self, client, org_id):
        """Test that a failed audit write never raises."""
        client.audit.fail_append = True
        audit = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.chart_seeded(organization_id=org_id, account_count=1)

        assert await audit.append_event(event) is False
