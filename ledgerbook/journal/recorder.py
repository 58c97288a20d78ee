"""
Journal Entry Recorder

Records balanced journal entries and reads them back with their lines.

VALIDATION ORDER (first failure wins):
1. The entry has at least one line
2. Each line is a debit OR a credit, with a non-negative cent-scale amount
3. Every line's account is an ACTIVE account of the same organization
4. Total debits equal total credits, exactly, at cent scale

CRITICAL: An entry and its lines go to storage in ONE insert_entry call.
The recorder never writes a partial entry and never retries a failed
write. A failed write surfaces as StorageError; the caller decides what
to do.

IMPORTANT: Validation NEVER silently fixes input. An amount with too many
decimal places is rejected, not rounded.
"""

from collections import defaultdict
from datetime import date
from typing import Any, Iterable, Mapping, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from ledgerbook.accounts.registry import AccountRegistry
from ledgerbook.exceptions import (
    EntryNotFoundError,
    InvalidLineError,
    LedgerValidationError,
    UnbalancedEntryError,
    UnknownAccountError,
)
from ledgerbook.models.ledger import (
    ZERO,
    Account,
    JournalEntry,
    JournalLine,
    JournalLineInput,
    to_money,
)
from ledgerbook.services.storage import (
    LedgerStorageInterface,
    MalformedRowError,
    Table,
)


logger = structlog.get_logger(__name__)

LineLike = Union[JournalLineInput, Mapping[str, Any]]


def _first_error(error: ValidationError) -> str:
    detail = error.errors()[0]
    field = ".".join(str(part) for part in detail.get("loc", ()))
    return f"{field}: {detail['msg']}" if field else detail["msg"]


def validate_entry_lines(
    lines: Iterable[LineLike],
    accounts_by_id: dict[UUID, Account],
) -> list[JournalLineInput]:
    """
    Validate the lines of one entry against an organization's accounts.

    Args:
        lines: JournalLineInput objects or plain mappings
        accounts_by_id: The organization's accounts

    Returns:
        The lines as JournalLineInput, amounts at cent scale

    Raises:
        InvalidLineError: Empty entry, malformed line, both sides or no side set
        UnknownAccountError: Account missing, foreign or inactive
        UnbalancedEntryError: Debits and credits differ
    """
    lines = list(lines)
    if not lines:
        raise InvalidLineError("A journal entry needs at least one line")

    normalized = []
    for index, line in enumerate(lines):
        if isinstance(line, JournalLineInput):
            parsed = line
        else:
            try:
                parsed = JournalLineInput.model_validate(line)
            except ValidationError as e:
                raise InvalidLineError(_first_error(e), line_index=index)

        if parsed.debit > 0 and parsed.credit > 0:
            raise InvalidLineError(
                "a line cannot carry both a debit and a credit",
                line_index=index,
            )
        if parsed.debit == 0 and parsed.credit == 0:
            raise InvalidLineError(
                "a line needs either a debit or a credit amount",
                line_index=index,
            )
        try:
            debit = to_money(parsed.debit)
            credit = to_money(parsed.credit)
        except ValueError as e:
            raise InvalidLineError(str(e), line_index=index)
        normalized.append(parsed.model_copy(update={"debit": debit, "credit": credit}))

    unknown = [
        line.account_id
        for line in normalized
        if line.account_id not in accounts_by_id
        or not accounts_by_id[line.account_id].is_active
    ]
    if unknown:
        raise UnknownAccountError(unknown)

    total_debit = sum((line.debit for line in normalized), ZERO)
    total_credit = sum((line.credit for line in normalized), ZERO)
    if total_debit != total_credit:
        raise UnbalancedEntryError(total_debit, total_credit)

    return normalized


def _line_from_row(row: dict[str, Any], account: Optional[Account]) -> JournalLine:
    try:
        return JournalLine.from_row(row, account=account)
    except (ValidationError, ValueError) as e:
        raise MalformedRowError(Table.JOURNAL_LINES, row.get("id"), str(e))


def _entry_from_row(row: dict[str, Any], lines: list[JournalLine]) -> JournalEntry:
    try:
        return JournalEntry.from_row(row, lines=lines)
    except (ValidationError, ValueError) as e:
        raise MalformedRowError(Table.JOURNAL_ENTRIES, row.get("id"), str(e))


class JournalRecorder:
    """
    Journal operations for one store.

    Uses the account registry to resolve accounts; one registry read per
    call, however many lines are involved.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        registry: Optional[AccountRegistry] = None,
    ):
        self._storage = storage
        self._registry = registry or AccountRegistry(storage)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def record_entry(
        self,
        organization_id: UUID,
        entry_date: date,
        description: str,
        lines: Iterable[LineLike],
        created_by: UUID,
        reference: Optional[str] = None,
    ) -> JournalEntry:
        """
        Record one balanced journal entry.

        Returns:
            The stored entry with resolved lines

        Raises:
            LedgerValidationError: Any validation failure (nothing is written)
            StorageError: The store refused or failed the write
        """
        try:
            entry = JournalEntry(
                organization_id=organization_id,
                entry_date=entry_date,
                description=description,
                reference=reference or None,
                created_by=created_by,
            )
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid journal entry: {_first_error(e)}")

        accounts_by_id = await self._registry.get_accounts_by_id(organization_id)
        validated = validate_entry_lines(lines, accounts_by_id)

        for line in validated:
            account = accounts_by_id[line.account_id]
            entry.lines.append(JournalLine(
                entry_id=entry.id,
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
                created_at=entry.created_at,
                updated_at=entry.created_at,
                account_code=account.code,
                account_name=account.name,
                account_type=account.type,
            ))

        await self._storage.insert_entry(
            entry.to_row(),
            [line.to_row() for line in entry.lines],
        )

        logger.info(
            "journal_entry_recorded",
            organization_id=str(organization_id),
            entry_id=str(entry.id),
            line_count=len(entry.lines),
            total=str(entry.total_debit),
        )
        return entry

    async def delete_entry(self, organization_id: UUID, entry_id: UUID) -> None:
        """
        Delete an entry; the store removes its lines with it.

        Raises:
            EntryNotFoundError: If the entry is not in this organization
        """
        rows = await self._storage.select(
            Table.JOURNAL_ENTRIES,
            {"organization_id": organization_id, "id": entry_id},
        )
        if not rows:
            raise EntryNotFoundError(entry_id)
        await self._storage.delete(Table.JOURNAL_ENTRIES, entry_id)
        logger.info(
            "journal_entry_deleted",
            organization_id=str(organization_id),
            entry_id=str(entry_id),
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _attach_lines(
        self,
        organization_id: UUID,
        entry_rows: list[dict[str, Any]],
    ) -> list[JournalEntry]:
        if not entry_rows:
            return []
        accounts_by_id = await self._registry.get_accounts_by_id(organization_id)
        line_rows = await self._storage.select(
            Table.JOURNAL_LINES,
            {"entry_id": [row["id"] for row in entry_rows]},
        )

        lines_by_entry: dict[str, list[JournalLine]] = defaultdict(list)
        unresolved = 0
        for row in line_rows:
            account_id = row.get("account_id")
            account = accounts_by_id.get(UUID(account_id)) if account_id else None
            if account is None:
                unresolved += 1
            lines_by_entry[row["entry_id"]].append(_line_from_row(row, account))

        if unresolved:
            logger.warning(
                "journal_lines_unresolved_account",
                organization_id=str(organization_id),
                count=unresolved,
            )

        return [
            _entry_from_row(row, lines_by_entry.get(row["id"], []))
            for row in entry_rows
        ]

    async def list_entries(
        self,
        organization_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[JournalEntry]:
        """
        List entries newest first (date, then creation time), lines attached.

        Args:
            organization_id: Organization to read
            date_from: Inclusive lower bound on the entry date
            date_to: Inclusive upper bound on the entry date
            limit: Maximum number of entries
        """
        rows = await self._storage.select(
            Table.JOURNAL_ENTRIES,
            {"organization_id": organization_id},
        )
        headers = [_entry_from_row(row, []) for row in rows]
        paired = [
            (header, row)
            for header, row in zip(headers, rows)
            if (date_from is None or header.entry_date >= date_from)
            and (date_to is None or header.entry_date <= date_to)
        ]
        paired.sort(
            key=lambda pair: (pair[0].entry_date, pair[0].created_at),
            reverse=True,
        )
        if limit is not None:
            paired = paired[:limit]
        return await self._attach_lines(organization_id, [row for _, row in paired])

    async def get_entry(self, organization_id: UUID, entry_id: UUID) -> JournalEntry:
        """
        Get one entry with its lines.

        Raises:
            EntryNotFoundError: If the entry is not in this organization
        """
        rows = await self._storage.select(
            Table.JOURNAL_ENTRIES,
            {"organization_id": organization_id, "id": entry_id},
        )
        if not rows:
            raise EntryNotFoundError(entry_id)
        return (await self._attach_lines(organization_id, rows))[0]

    async def count_entries(self, organization_id: UUID) -> int:
        rows = await self._storage.select(
            Table.JOURNAL_ENTRIES,
            {"organization_id": organization_id},
        )
        return len(rows)
