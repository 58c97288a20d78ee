"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is a supported storage backend because:
1. Owners can view their books directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for one small business)
- No transactions (we handle this with careful ordering, see insert_entry)
- Limited query capabilities (we filter in Python)
- Constraints are checked in Python before each write

RETRIES: Reads are retried with exponential backoff. Writes are NOT:
retrying a journal write without an idempotency key could record the
same entry twice.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledgerbook.config import GoogleSheetsSettings, get_settings
from ledgerbook.models.audit import AUDIT_COLUMNS, AuditEvent
from ledgerbook.models.ledger import ACCOUNT_COLUMNS, ENTRY_COLUMNS, LINE_COLUMNS
from ledgerbook.services.storage.interface import (
    AuditStorageInterface,
    ConstraintViolationError,
    LedgerStorageInterface,
    NotFoundError,
    PartialWriteError,
    Row,
    StorageError,
    StorageUnavailableError,
    Table,
    normalize_value,
    row_matches,
)


logger = structlog.get_logger(__name__)


TABLE_COLUMNS: dict[Table, list[str]] = {
    Table.ACCOUNTS: ACCOUNT_COLUMNS,
    Table.JOURNAL_ENTRIES: ENTRY_COLUMNS,
    Table.JOURNAL_LINES: LINE_COLUMNS,
}


def _to_cells(row: Row, columns: list[str]) -> list[str]:
    """Convert a row to spreadsheet cells in column order."""
    cells = []
    for column in columns:
        value = normalize_value(row.get(column))
        if value is None:
            cells.append("")
        else:
            cells.append(str(value))
    return cells


def _from_cells(values: list[str], columns: list[str]) -> Row:
    """Convert spreadsheet cells back to a row; empty cells become None."""
    row = {}
    for index, column in enumerate(columns):
        value = values[index] if index < len(values) else ""
        row[column] = value if value != "" else None
    return row


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and maps ledger tables to worksheets.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_table_sheet(self, table: Table) -> gspread.Worksheet:
        """Get or create the worksheet that stores a ledger table."""
        titles = {
            Table.ACCOUNTS: self._settings.accounts_sheet_name,
            Table.JOURNAL_ENTRIES: self._settings.entries_sheet_name,
            Table.JOURNAL_LINES: self._settings.lines_sheet_name,
        }
        if table not in titles:
            raise StorageError(f"Table not stored in Google Sheets: {table.value}")
        rows = 5000 if table == Table.JOURNAL_LINES else 1000
        return self._get_or_create_sheet(titles[table], TABLE_COLUMNS[table], rows)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Each table is a worksheet with a header row and one record per row.
    Journal lines are only visible once their entry row exists.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        read_attempts: Optional[int] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._read_attempts = read_attempts or get_settings().ledger.storage_read_attempts

    # -------------------------------------------------------------------------
    # Sheet access
    # -------------------------------------------------------------------------

    def _fetch_values(self, table: Table) -> list[list[str]]:
        try:
            return self._client.get_table_sheet(table).get_all_values()
        except StorageError:
            raise
        except gspread.exceptions.APIError as e:
            raise StorageUnavailableError(f"Failed to read {table.value}: {e}")
        except Exception as e:
            raise StorageError(f"Failed to read {table.value}: {e}")

    async def _read_rows(self, table: Table) -> list[tuple[int, Row]]:
        """
        Read all data rows of a table with their 1-based sheet row numbers.

        Transient API failures are retried.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._read_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(StorageUnavailableError),
            reraise=True,
        ):
            with attempt:
                values = self._fetch_values(table)

        columns = TABLE_COLUMNS[table]
        rows = []
        # Row 1 is the header
        for index, cells in enumerate(values[1:], start=2):
            if not cells or not cells[0]:  # Skip empty rows
                continue
            rows.append((index, _from_cells(cells, columns)))
        return rows

    async def _find(self, table: Table, row_id: UUID) -> Optional[tuple[int, Row]]:
        key = str(row_id)
        for index, row in await self._read_rows(table):
            if row["id"] == key:
                return index, row
        return None

    # -------------------------------------------------------------------------
    # Constraint checks (the sheet enforces none of its own)
    # -------------------------------------------------------------------------

    async def _check_account(self, row: Row) -> None:
        accounts = [r for _, r in await self._read_rows(Table.ACCOUNTS)]
        for other in accounts:
            if (
                other["id"] != row["id"]
                and other["organization_id"] == row.get("organization_id")
                and other["code"] == row.get("code")
            ):
                raise ConstraintViolationError(
                    f"Duplicate account code {row.get('code')}",
                    constraint="accounts_organization_id_code_key",
                )
        parent_id = row.get("parent_account_id")
        if parent_id and parent_id not in {a["id"] for a in accounts}:
            raise ConstraintViolationError(
                f"Parent account {parent_id} does not exist",
                constraint="accounts_parent_account_id_fkey",
            )

    async def _check_lines(self, line_rows: list[Row]) -> None:
        account_ids = {r["id"] for _, r in await self._read_rows(Table.ACCOUNTS)}
        for line in line_rows:
            debit = Decimal(str(line.get("debit") or "0"))
            credit = Decimal(str(line.get("credit") or "0"))
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
            if line.get("account_id") not in account_ids:
                raise ConstraintViolationError(
                    f"Account {line.get('account_id')} does not exist",
                    constraint="journal_lines_account_id_fkey",
                )

    # -------------------------------------------------------------------------
    # LedgerStorageInterface
    # -------------------------------------------------------------------------

    async def insert(self, table: Table, row: Row) -> UUID:
        row = {key: normalize_value(value) for key, value in row.items()}
        if table == Table.ACCOUNTS:
            await self._check_account(row)
        elif table == Table.JOURNAL_LINES:
            await self._check_lines([row])
        try:
            sheet = self._client.get_table_sheet(table)
            sheet.append_row(_to_cells(row, TABLE_COLUMNS[table]), value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table.value}: {e}")
        return UUID(row["id"])

    async def insert_entry(self, entry_row: Row, line_rows: list[Row]) -> UUID:
        """
        Write lines first (one batch), then the entry row.

        Readers ignore lines whose entry row is missing, so the unit only
        becomes visible when the entry row lands. If that last append
        fails, the orphan lines are removed; if removal also fails the
        inconsistency is raised as PartialWriteError.
        """
        entry_row = {key: normalize_value(value) for key, value in entry_row.items()}
        line_rows = [
            {key: normalize_value(value) for key, value in line.items()}
            for line in line_rows
        ]
        entry_id = entry_row["id"]
        for line in line_rows:
            if line.get("entry_id") != entry_id:
                raise ConstraintViolationError(
                    f"Line {line.get('id')} does not belong to entry {entry_id}",
                    constraint="journal_lines_entry_id_fkey",
                )
        await self._check_lines(line_rows)

        try:
            lines_sheet = self._client.get_table_sheet(Table.JOURNAL_LINES)
            lines_sheet.append_rows(
                [_to_cells(line, LINE_COLUMNS) for line in line_rows],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write journal lines: {e}")

        try:
            entries_sheet = self._client.get_table_sheet(Table.JOURNAL_ENTRIES)
            entries_sheet.append_row(
                _to_cells(entry_row, ENTRY_COLUMNS),
                value_input_option="RAW",
            )
        except Exception as e:
            logger.error(
                "journal_entry_write_failed",
                entry_id=entry_id,
                line_count=len(line_rows),
                error=str(e),
            )
            try:
                await self._delete_lines_of(entry_id)
            except Exception as cleanup_error:
                raise PartialWriteError(
                    f"Entry {entry_id} was not written and its {len(line_rows)} "
                    f"line(s) could not be removed: {cleanup_error}"
                )
            raise StorageError(f"Failed to write journal entry: {e}")

        return UUID(entry_id)

    async def select(
        self,
        table: Table,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[Row]:
        rows = [row for _, row in await self._read_rows(table) if row_matches(row, filters)]
        if table == Table.JOURNAL_LINES and rows:
            entry_ids = {r["id"] for _, r in await self._read_rows(Table.JOURNAL_ENTRIES)}
            rows = [row for row in rows if row["entry_id"] in entry_ids]
        return rows

    async def update(self, table: Table, row_id: UUID, changes: Row) -> Row:
        found = await self._find(table, row_id)
        if found is None:
            raise NotFoundError(f"{table.value} row not found: {row_id}")
        index, current = found
        updated = {
            **current,
            **{key: normalize_value(value) for key, value in changes.items()},
            "id": current["id"],
        }
        if table == Table.ACCOUNTS:
            await self._check_account(updated)

        columns = TABLE_COLUMNS[table]
        new_cells = _to_cells(updated, columns)
        # Whole row in one call
        row_range = (
            f"{rowcol_to_a1(index, 1)}:{rowcol_to_a1(index, len(columns))}"
        )
        try:
            sheet = self._client.get_table_sheet(table)
            sheet.update(
                range_name=row_range,
                values=[new_cells],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to update {table.value} row {row_id}: {e}")
        return _from_cells(new_cells, columns)

    async def delete(self, table: Table, row_id: UUID) -> bool:
        found = await self._find(table, row_id)
        if found is None:
            return False
        index, _ = found
        key = str(row_id)

        if table == Table.ACCOUNTS:
            # Orphan lines from an interrupted entry write count too
            lines = [
                row for _, row in await self._read_rows(Table.JOURNAL_LINES)
                if row["account_id"] == key
            ]
            if lines:
                raise ConstraintViolationError(
                    f"Account {key} is referenced by {len(lines)} journal line(s)",
                    constraint="journal_lines_account_id_fkey",
                )

        try:
            self._client.get_table_sheet(table).delete_rows(index)
        except Exception as e:
            raise StorageError(f"Failed to delete {table.value} row {row_id}: {e}")

        if table == Table.ACCOUNTS:
            for _, child in await self._read_rows(Table.ACCOUNTS):
                if child["parent_account_id"] == key:
                    await self.update(Table.ACCOUNTS, UUID(child["id"]), {"parent_account_id": None})
        elif table == Table.JOURNAL_ENTRIES:
            # Entry row goes first so lines are already invisible
            await self._delete_lines_of(key)
        return True

    async def _delete_lines_of(self, entry_id: str) -> None:
        sheet = self._client.get_table_sheet(Table.JOURNAL_LINES)
        indices = [
            index for index, row in await self._read_rows(Table.JOURNAL_LINES)
            if row["entry_id"] == entry_id
        ]
        # Bottom-up so earlier deletions don't shift later indices
        for index in sorted(indices, reverse=True):
            sheet.delete_rows(index)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning(
                "audit_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(AuditEvent.from_sheets_row(row))
            except Exception as e:
                logger.warning("audit_row_unreadable", row_id=row[0], error=str(e))
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
