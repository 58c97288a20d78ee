"""
Abstract Storage Interface

DESIGN DECISION: The ledger consumes storage as a generic tabular store.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The interface is intentionally small - row-oriented create/read/update/
delete plus ONE compound write: a journal entry together with its lines.
That compound write is the atomic unit of the ledger; everything else is
single-row.

Tenant isolation (who may read or write an organization's rows) is the
store's job. The ledger always passes an explicit organization filter
but does not implement access control.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from ledgerbook.models.audit import AuditEvent


class Table(str, Enum):
    """Relations the ledger reads and writes."""
    ORGANIZATIONS = "organizations"
    USER_ORGANIZATIONS = "user_organizations"
    ACCOUNTS = "accounts"
    JOURNAL_ENTRIES = "journal_entries"
    JOURNAL_LINES = "journal_lines"


Row = dict[str, Any]


def normalize_value(value: Any) -> Any:
    """
    Normalize a filter or row value to its stored primitive form.

    UUIDs, enums, dates and decimals are stored as strings so that every
    backend compares like with like.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def row_matches(row: Row, filters: Optional[dict[str, Any]]) -> bool:
    """
    Check a row against equality filters.

    A list, tuple or set filter value means "column is one of these".
    """
    if not filters:
        return True
    for column, expected in filters.items():
        actual = normalize_value(row.get(column))
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in {normalize_value(v) for v in expected}:
                return False
        elif actual != normalize_value(expected):
            return False
    return True


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def insert(self, table: Table, row: Row) -> UUID:
        """
        Insert a single row.

        Args:
            table: Target table
            row: Row values; must include "id"

        Returns:
            The id of the inserted row

        Raises:
            ConstraintViolationError: If a uniqueness or check constraint fails
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def insert_entry(self, entry_row: Row, line_rows: list[Row]) -> UUID:
        """
        Insert a journal entry and all of its lines as ONE unit.

        Readers must never observe the entry without its lines or the
        lines without their entry.

        Args:
            entry_row: journal_entries row
            line_rows: journal_lines rows, all referencing entry_row["id"]

        Returns:
            The entry id

        Raises:
            ConstraintViolationError: If any row violates a constraint
                                      (nothing is written)
            PartialWriteError: If the store accepted part of the unit and
                               could not undo it
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def select(
        self,
        table: Table,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[Row]:
        """
        Read rows matching equality filters.

        Args:
            table: Source table
            filters: {column: value}; a list/tuple/set value matches any member

        Returns:
            Matching rows (unordered)
        """
        pass

    @abstractmethod
    async def update(self, table: Table, row_id: UUID, changes: Row) -> Row:
        """
        Update columns of one row.

        Returns:
            The full updated row

        Raises:
            NotFoundError: If the row doesn't exist
            ConstraintViolationError: If the change violates a constraint
        """
        pass

    @abstractmethod
    async def delete(self, table: Table, row_id: UUID) -> bool:
        """
        Delete one row.

        Returns:
            True if a row was deleted, False if it did not exist

        Raises:
            ConstraintViolationError: If other rows still reference it
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one user request).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConstraintViolationError(StorageError):
    """The store refused a write that breaks one of its constraints."""

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message)
        self.constraint = constraint


class StorageUnavailableError(StorageError):
    """Could not reach the storage backend."""
    pass


class PartialWriteError(StorageError):
    """
    Part of an atomic unit was written and could not be rolled back.

    This is a fatal inconsistency and must be surfaced, never retried.
    """
    pass


class MalformedRowError(StorageError):
    """A stored row could not be validated into a ledger model."""

    def __init__(self, table: Table, row_id: Any, reason: str):
        super().__init__(f"Malformed {table.value} row {row_id}: {reason}")
        self.table = table
        self.row_id = row_id
