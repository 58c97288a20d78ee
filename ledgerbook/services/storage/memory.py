"""
In-Memory Storage Implementation

Used by the test suite and for local runs without a spreadsheet.

It enforces the same constraints the hosted schema does, so ledger code
that passes against it behaves the same against a real store:
- (organization_id, code) is unique on accounts
- parent_account_id must reference an existing account
- journal lines are non-negative and never both debit and credit
- an account referenced by journal lines cannot be deleted
- deleting an entry deletes its lines
- deleting an account clears parent_account_id on its children

insert_entry validates every row before writing any of them, which makes
it all-or-nothing.
"""

from copy import deepcopy
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from ledgerbook.models.audit import AuditEvent
from ledgerbook.services.storage.interface import (
    AuditStorageInterface,
    ConstraintViolationError,
    LedgerStorageInterface,
    NotFoundError,
    Row,
    Table,
    normalize_value,
    row_matches,
)


def _normalize_row(row: Row) -> Row:
    return {key: normalize_value(value) for key, value in row.items()}


def _amount(value: Any) -> Decimal:
    return Decimal(str(value)) if value not in (None, "") else Decimal("0")


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage."""

    def __init__(self):
        self._tables: dict[Table, dict[str, Row]] = {table: {} for table in Table}

    # -------------------------------------------------------------------------
    # Constraint checks
    # -------------------------------------------------------------------------

    def _check_account(self, row: Row) -> None:
        accounts = self._tables[Table.ACCOUNTS]
        for other in accounts.values():
            if (
                other["id"] != row["id"]
                and other.get("organization_id") == row.get("organization_id")
                and other.get("code") == row.get("code")
            ):
                raise ConstraintViolationError(
                    f"Duplicate account code {row.get('code')}",
                    constraint="accounts_organization_id_code_key",
                )
        parent_id = row.get("parent_account_id")
        if parent_id and parent_id not in accounts:
            raise ConstraintViolationError(
                f"Parent account {parent_id} does not exist",
                constraint="accounts_parent_account_id_fkey",
            )

    def _check_line(self, row: Row, pending_entry_id: Optional[str] = None) -> None:
        debit = _amount(row.get("debit"))
        credit = _amount(row.get("credit"))
        if debit < 0 or credit < 0:
            raise ConstraintViolationError(
                "Journal line amounts must be non-negative",
                constraint="journal_lines_check",
            )
        if debit > 0 and credit > 0:
            raise ConstraintViolationError(
                "Journal line cannot be both debit and credit",
                constraint="journal_lines_check1",
            )
        entry_id = row.get("entry_id")
        if entry_id != pending_entry_id and entry_id not in self._tables[Table.JOURNAL_ENTRIES]:
            raise ConstraintViolationError(
                f"Journal entry {entry_id} does not exist",
                constraint="journal_lines_entry_id_fkey",
            )
        if row.get("account_id") not in self._tables[Table.ACCOUNTS]:
            raise ConstraintViolationError(
                f"Account {row.get('account_id')} does not exist",
                constraint="journal_lines_account_id_fkey",
            )

    def _check(self, table: Table, row: Row) -> None:
        if table == Table.ACCOUNTS:
            self._check_account(row)
        elif table == Table.JOURNAL_LINES:
            self._check_line(row)

    # -------------------------------------------------------------------------
    # LedgerStorageInterface
    # -------------------------------------------------------------------------

    async def insert(self, table: Table, row: Row) -> UUID:
        row = _normalize_row(row)
        row_id = row.get("id")
        if not row_id:
            raise ConstraintViolationError(f"{table.value} row has no id")
        if row_id in self._tables[table]:
            raise ConstraintViolationError(
                f"Duplicate {table.value} id {row_id}",
                constraint=f"{table.value}_pkey",
            )
        self._check(table, row)
        self._tables[table][row_id] = row
        return UUID(row_id)

    async def insert_entry(self, entry_row: Row, line_rows: list[Row]) -> UUID:
        entry_row = _normalize_row(entry_row)
        line_rows = [_normalize_row(line) for line in line_rows]
        entry_id = entry_row.get("id")

        # Validate the whole unit before touching any table
        if not entry_id or entry_id in self._tables[Table.JOURNAL_ENTRIES]:
            raise ConstraintViolationError(
                f"Invalid or duplicate journal entry id {entry_id}",
                constraint="journal_entries_pkey",
            )
        line_ids = set()
        for line in line_rows:
            line_id = line.get("id")
            if (
                not line_id
                or line_id in line_ids
                or line_id in self._tables[Table.JOURNAL_LINES]
            ):
                raise ConstraintViolationError(
                    f"Invalid or duplicate journal line id {line_id}",
                    constraint="journal_lines_pkey",
                )
            if line.get("entry_id") != entry_id:
                raise ConstraintViolationError(
                    f"Line {line_id} does not belong to entry {entry_id}",
                    constraint="journal_lines_entry_id_fkey",
                )
            self._check_line(line, pending_entry_id=entry_id)
            line_ids.add(line_id)

        self._tables[Table.JOURNAL_ENTRIES][entry_id] = entry_row
        for line in line_rows:
            self._tables[Table.JOURNAL_LINES][line["id"]] = line
        return UUID(entry_id)

    async def select(
        self,
        table: Table,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[Row]:
        return [
            deepcopy(row)
            for row in self._tables[table].values()
            if row_matches(row, filters)
        ]

    async def update(self, table: Table, row_id: UUID, changes: Row) -> Row:
        key = str(row_id)
        current = self._tables[table].get(key)
        if current is None:
            raise NotFoundError(f"{table.value} row not found: {row_id}")
        updated = {**current, **_normalize_row(changes), "id": key}
        self._check(table, updated)
        self._tables[table][key] = updated
        return deepcopy(updated)

    async def delete(self, table: Table, row_id: UUID) -> bool:
        key = str(row_id)
        if key not in self._tables[table]:
            return False

        if table == Table.ACCOUNTS:
            referencing = [
                line for line in self._tables[Table.JOURNAL_LINES].values()
                if line.get("account_id") == key
            ]
            if referencing:
                raise ConstraintViolationError(
                    f"Account {key} is referenced by {len(referencing)} journal line(s)",
                    constraint="journal_lines_account_id_fkey",
                )
            for account in self._tables[Table.ACCOUNTS].values():
                if account.get("parent_account_id") == key:
                    account["parent_account_id"] = None

        elif table == Table.JOURNAL_ENTRIES:
            lines = self._tables[Table.JOURNAL_LINES]
            for line_id in [lid for lid, line in lines.items() if line.get("entry_id") == key]:
                del lines[line_id]

        del self._tables[table][key]
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit storage."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
