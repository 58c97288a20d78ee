"""
Tests for the in-memory storage backend.

These pin the constraints that ledger code relies on the store to enforce.
"""

import pytest
from uuid import UUID, uuid4

from ledgerbook.services.storage import (
    ConstraintViolationError,
    InMemoryLedgerStorage,
    NotFoundError,
    Table,
)


ORG = str(uuid4())


def account_row(code="1000", parent=None, org=ORG):
    return {
        "id": str(uuid4()),
        "organization_id": org,
        "code": code,
        "name": f"Account {code}",
        "type": "asset",
        "parent_account_id": parent,
        "is_active": True,
    }


def entry_row():
    return {
        "id": str(uuid4()),
        "organization_id": ORG,
        "date": "2024-01-01",
        "description": "Test entry",
        "created_by": str(uuid4()),
    }


def line_row(entry_id, account_id, debit="0", credit="0"):
    return {
        "id": str(uuid4()),
        "entry_id": entry_id,
        "account_id": account_id,
        "debit": debit,
        "credit": credit,
    }


@pytest.fixture
def memory():
    return InMemoryLedgerStorage()


class TestAccountsTable:
    """Tests for account constraints."""

    @pytest.mark.asyncio
    async def test_insert_and_select_with_list_filter(self, memory):
        """Test that a list filter value means "one of"."""
        a = account_row("1000")
        b = account_row("2000")
        c = account_row("3000")
        for row in (a, b, c):
            assert await memory.insert(Table.ACCOUNTS, row) == UUID(row["id"])

        rows = await memory.select(Table.ACCOUNTS, {"code": ["1000", "3000"]})
        assert sorted(r["code"] for r in rows) == ["1000", "3000"]

    @pytest.mark.asyncio
    async def test_uuid_filters_match_stored_strings(self, memory):
        """Test that UUID filter values are normalized."""
        row = account_row()
        await memory.insert(Table.ACCOUNTS, row)
        rows = await memory.select(Table.ACCOUNTS, {"organization_id": UUID(ORG)})
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_duplicate_code_in_same_org(self, memory):
        """Test the per-organization unique code."""
        await memory.insert(Table.ACCOUNTS, account_row("1000"))
        with pytest.raises(ConstraintViolationError) as exc:
            await memory.insert(Table.ACCOUNTS, account_row("1000"))
        assert exc.value.constraint == "accounts_organization_id_code_key"

        # Another organization may reuse the code
        await memory.insert(Table.ACCOUNTS, account_row("1000", org=str(uuid4())))

    @pytest.mark.asyncio
    async def test_unknown_parent(self, memory):
        """Test the parent foreign key."""
        with pytest.raises(ConstraintViolationError) as exc:
            await memory.insert(Table.ACCOUNTS, account_row(parent=str(uuid4())))
        assert exc.value.constraint == "accounts_parent_account_id_fkey"

    @pytest.mark.asyncio
    async def test_duplicate_id(self, memory):
        """Test the primary key."""
        row = account_row()
        await memory.insert(Table.ACCOUNTS, row)
        with pytest.raises(ConstraintViolationError) as exc:
            await memory.insert(Table.ACCOUNTS, {**row, "code": "9999"})
        assert exc.value.constraint == "accounts_pkey"

    @pytest.mark.asyncio
    async def test_update_checks_constraints(self, memory):
        """Test that updates cannot create a duplicate code."""
        await memory.insert(Table.ACCOUNTS, account_row("1000"))
        other = account_row("2000")
        await memory.insert(Table.ACCOUNTS, other)

        with pytest.raises(ConstraintViolationError):
            await memory.update(Table.ACCOUNTS, UUID(other["id"]), {"code": "1000"})

        updated = await memory.update(Table.ACCOUNTS, UUID(other["id"]), {"name": "Renamed"})
        assert updated["name"] == "Renamed"
        assert updated["code"] == "2000"

    @pytest.mark.asyncio
    async def test_update_missing_row(self, memory):
        """Test updating a row that doesn't exist."""
        with pytest.raises(NotFoundError):
            await memory.update(Table.ACCOUNTS, uuid4(), {"name": "x"})

    @pytest.mark.asyncio
    async def test_select_returns_copies(self, memory):
        """Test that callers cannot mutate stored rows."""
        await memory.insert(Table.ACCOUNTS, account_row())
        rows = await memory.select(Table.ACCOUNTS)
        rows[0]["name"] = "mutated"
        assert (await memory.select(Table.ACCOUNTS))[0]["name"] == "Account 1000"


class TestInsertEntry:
    """Tests for the atomic entry write."""

    @pytest.mark.asyncio
    async def test_entry_and_lines_are_written(self, memory):
        """Test a valid unit."""
        cash = account_row("1000")
        sales = account_row("4000")
        await memory.insert(Table.ACCOUNTS, cash)
        await memory.insert(Table.ACCOUNTS, sales)
        entry = entry_row()
        lines = [
            line_row(entry["id"], cash["id"], debit="10.00"),
            line_row(entry["id"], sales["id"], credit="10.00"),
        ]

        assert await memory.insert_entry(entry, lines) == UUID(entry["id"])
        stored = await memory.select(Table.JOURNAL_LINES, {"entry_id": entry["id"]})
        assert len(stored) == 2

    @pytest.mark.asyncio
    async def test_bad_line_writes_nothing(self, memory):
        """Test that one invalid line leaves no trace of the entry."""
        cash = account_row("1000")
        await memory.insert(Table.ACCOUNTS, cash)
        entry = entry_row()
        lines = [
            line_row(entry["id"], cash["id"], debit="10.00"),
            line_row(entry["id"], str(uuid4()), credit="10.00"),
        ]

        with pytest.raises(ConstraintViolationError) as exc:
            await memory.insert_entry(entry, lines)
        assert exc.value.constraint == "journal_lines_account_id_fkey"
        assert await memory.select(Table.JOURNAL_ENTRIES) == []
        assert await memory.select(Table.JOURNAL_LINES) == []

    @pytest.mark.asyncio
    async def test_line_sides_are_exclusive(self, memory):
        """Test the check constraints on line amounts."""
        cash = account_row("1000")
        await memory.insert(Table.ACCOUNTS, cash)
        entry = entry_row()

        with pytest.raises(ConstraintViolationError) as exc:
            await memory.insert_entry(entry, [line_row(entry["id"], cash["id"], "5", "5")])
        assert exc.value.constraint == "journal_lines_check1"

        with pytest.raises(ConstraintViolationError) as exc:
            await memory.insert_entry(entry, [line_row(entry["id"], cash["id"], "-5", "0")])
        assert exc.value.constraint == "journal_lines_check"

    @pytest.mark.asyncio
    async def test_line_for_another_entry(self, memory):
        """Test that every line must reference the entry being written."""
        cash = account_row("1000")
        await memory.insert(Table.ACCOUNTS, cash)
        entry = entry_row()
        with pytest.raises(ConstraintViolationError):
            await memory.insert_entry(entry, [line_row(str(uuid4()), cash["id"], debit="1")])

    @pytest.mark.asyncio
    async def test_single_line_insert_needs_existing_entry(self, memory):
        """Test the entry foreign key on a standalone line insert."""
        cash = account_row("1000")
        await memory.insert(Table.ACCOUNTS, cash)
        with pytest.raises(ConstraintViolationError) as exc:
            await memory.insert(Table.JOURNAL_LINES, line_row(str(uuid4()), cash["id"], debit="1"))
        assert exc.value.constraint == "journal_lines_entry_id_fkey"


class TestDelete:
    """Tests for delete behaviour."""

    @pytest.mark.asyncio
    async def test_entry_delete_cascades_to_lines(self, memory):
        """Test that deleting an entry removes its lines."""
        cash = account_row("1000")
        sales = account_row("4000")
        await memory.insert(Table.ACCOUNTS, cash)
        await memory.insert(Table.ACCOUNTS, sales)
        entry = entry_row()
        await memory.insert_entry(entry, [
            line_row(entry["id"], cash["id"], debit="3"),
            line_row(entry["id"], sales["id"], credit="3"),
        ])

        assert await memory.delete(Table.JOURNAL_ENTRIES, UUID(entry["id"])) is True
        assert await memory.select(Table.JOURNAL_LINES) == []

    @pytest.mark.asyncio
    async def test_referenced_account_is_restricted(self, memory):
        """Test that an account with lines cannot be deleted."""
        cash = account_row("1000")
        sales = account_row("4000")
        await memory.insert(Table.ACCOUNTS, cash)
        await memory.insert(Table.ACCOUNTS, sales)
        entry = entry_row()
        await memory.insert_entry(entry, [
            line_row(entry["id"], cash["id"], debit="3"),
            line_row(entry["id"], sales["id"], credit="3"),
        ])

        with pytest.raises(ConstraintViolationError):
            await memory.delete(Table.ACCOUNTS, UUID(cash["id"]))
        assert len(await memory.select(Table.ACCOUNTS)) == 2

    @pytest.mark.asyncio
    async def test_parent_delete_clears_children(self, memory):
        """Test that children of a deleted account become roots."""
        parent = account_row("1000")
        await memory.insert(Table.ACCOUNTS, parent)
        child = account_row("1010", parent=parent["id"])
        await memory.insert(Table.ACCOUNTS, child)

        assert await memory.delete(Table.ACCOUNTS, UUID(parent["id"])) is True
        (remaining,) = await memory.select(Table.ACCOUNTS)
        assert remaining["id"] == child["id"]
        assert remaining["parent_account_id"] is None

    @pytest.mark.asyncio
    async def test_delete_missing_row(self, memory):
        """Test that deleting an unknown row reports False."""
        assert await memory.delete(Table.ACCOUNTS, uuid4()) is False
