"""
Main Orchestrator for Ledgerbook

This module ties together all the components and defines the
write flows for:
1. Chart of accounts (create, edit, deactivate, delete, seed)
2. Journal (record, delete)

DESIGN DECISION: The orchestrator is the boundary between typed ledger
errors and a presentation layer:
- Registry and recorder RAISE LedgerError subclasses
- Flows CATCH them and return an OperationResult carrying the error code
  and message unchanged
- Every change and every refusal is audited

Storage failures are NOT converted into results. They are audited and
re-raised; a broken collaborator is not a user mistake.
"""

from datetime import date
from typing import Any, Iterable, NamedTuple, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from ledgerbook.accounts.registry import AccountRegistry
from ledgerbook.audit import AuditLogger, configure_logging, create_correlation_id
from ledgerbook.config import get_settings
from ledgerbook.exceptions import LedgerError
from ledgerbook.journal.recorder import JournalRecorder, LineLike
from ledgerbook.models.audit import AuditEventType
from ledgerbook.models.ledger import Account, AccountNode, AccountType, JournalEntry
from ledgerbook.queries import LedgerQueryFacade
from ledgerbook.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class OperationResult(BaseModel):
    """
    Outcome of a write flow.

    On failure, error_code is the LedgerError's stable code and
    error_message its user-facing message.
    """

    success: bool
    correlation_id: Optional[UUID] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_details: dict[str, Any] = Field(default_factory=dict)

    # Payloads
    account: Optional[Account] = None
    accounts: list[Account] = Field(default_factory=list)
    tree: list[AccountNode] = Field(default_factory=list)
    entry: Optional[JournalEntry] = None

    @classmethod
    def failed(cls, error: LedgerError, correlation_id: Optional[UUID] = None) -> "OperationResult":
        return cls(
            success=False,
            correlation_id=correlation_id,
            error_code=error.code,
            error_message=error.message,
            error_details=error.to_dict(),
        )


class ChartOfAccountsFlow:
    """
    Orchestrates chart-of-accounts changes.

    Each method returns an OperationResult; a refused change is a result
    with success=False, never an exception.
    """

    def __init__(
        self,
        registry: AccountRegistry,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._registry = registry
        self._audit_logger = audit_logger

    async def _rejected(
        self,
        organization_id: UUID,
        error: LedgerError,
        correlation_id: UUID,
        account_id: Optional[UUID] = None,
    ) -> OperationResult:
        if self._audit_logger:
            await self._audit_logger.log_rejected(
                event_type=AuditEventType.ACCOUNT_REJECTED,
                organization_id=organization_id,
                error=error,
                entity_id=account_id,
                correlation_id=correlation_id,
            )
        return OperationResult.failed(error, correlation_id)

    async def _storage_failed(
        self,
        operation: str,
        organization_id: UUID,
        error: StorageError,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                organization_id=organization_id,
                correlation_id=correlation_id,
            )

    async def _changed(
        self,
        event_type: AuditEventType,
        account: Account,
        correlation_id: UUID,
    ) -> OperationResult:
        if self._audit_logger:
            await self._audit_logger.log_account_changed(
                event_type=event_type,
                account=account,
                correlation_id=correlation_id,
            )
        return OperationResult(success=True, correlation_id=correlation_id, account=account)

    async def create_account(
        self,
        organization_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        parent_account_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Create an account."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            account = await self._registry.create_account(
                organization_id,
                code,
                name,
                account_type,
                parent_account_id=parent_account_id,
            )
        except LedgerError as e:
            return await self._rejected(organization_id, e, correlation_id)
        except StorageError as e:
            await self._storage_failed("create_account", organization_id, e, correlation_id)
            raise
        return await self._changed(AuditEventType.ACCOUNT_CREATED, account, correlation_id)

    async def update_account(
        self,
        organization_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
        **changes: Any,
    ) -> OperationResult:
        """
        Edit an account.

        Accepts the keyword arguments of AccountRegistry.update_account
        (code, name, account_type, parent_account_id, is_active).
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            account = await self._registry.update_account(organization_id, account_id, **changes)
        except LedgerError as e:
            return await self._rejected(organization_id, e, correlation_id, account_id)
        except StorageError as e:
            await self._storage_failed("update_account", organization_id, e, correlation_id)
            raise
        return await self._changed(AuditEventType.ACCOUNT_UPDATED, account, correlation_id)

    async def deactivate_account(
        self,
        organization_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Soft-disable an account."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            account = await self._registry.deactivate_account(organization_id, account_id)
        except LedgerError as e:
            return await self._rejected(organization_id, e, correlation_id, account_id)
        except StorageError as e:
            await self._storage_failed("deactivate_account", organization_id, e, correlation_id)
            raise
        return await self._changed(AuditEventType.ACCOUNT_DEACTIVATED, account, correlation_id)

    async def delete_account(
        self,
        organization_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Delete an account that no journal line references."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            account = await self._registry.get_account(organization_id, account_id)
            await self._registry.delete_account(organization_id, account_id)
        except LedgerError as e:
            return await self._rejected(organization_id, e, correlation_id, account_id)
        except StorageError as e:
            await self._storage_failed("delete_account", organization_id, e, correlation_id)
            raise
        return await self._changed(AuditEventType.ACCOUNT_DELETED, account, correlation_id)

    async def seed_default_chart(
        self,
        organization_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """
        Install the default chart for an organization with no accounts.

        Succeeds with an empty account list when the organization already
        has a chart.
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            accounts = await self._registry.seed_default_chart(organization_id)
        except LedgerError as e:
            return await self._rejected(organization_id, e, correlation_id)
        except StorageError as e:
            await self._storage_failed("seed_default_chart", organization_id, e, correlation_id)
            raise

        if accounts and self._audit_logger:
            await self._audit_logger.log_chart_seeded(
                organization_id=organization_id,
                account_count=len(accounts),
                correlation_id=correlation_id,
            )
        return OperationResult(success=True, correlation_id=correlation_id, accounts=accounts)

    async def list_accounts(
        self,
        organization_id: UUID,
        search: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        include_inactive: bool = True,
    ) -> OperationResult:
        """The chart of accounts as a tree."""
        tree = await self._registry.list_accounts(
            organization_id,
            search=search,
            account_type=account_type,
            include_inactive=include_inactive,
        )
        return OperationResult(success=True, tree=tree)


class JournalEntryFlow:
    """
    Orchestrates journal writes.

    Flow:
    1. Validate lines (recorder)
    2. Write entry + lines as one unit (recorder → storage)
    3. Audit the result, whether recorded or refused
    """

    def __init__(
        self,
        recorder: JournalRecorder,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._recorder = recorder
        self._audit_logger = audit_logger

    async def record_entry(
        self,
        organization_id: UUID,
        entry_date: date,
        description: str,
        lines: Iterable[LineLike],
        created_by: UUID,
        reference: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """
        Record a balanced journal entry.

        Returns:
            OperationResult with the stored entry, or the refusal reason
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            entry = await self._recorder.record_entry(
                organization_id,
                entry_date,
                description,
                lines,
                created_by,
                reference=reference,
            )
        except LedgerError as e:
            if self._audit_logger:
                await self._audit_logger.log_rejected(
                    event_type=AuditEventType.ENTRY_REJECTED,
                    organization_id=organization_id,
                    error=e,
                    correlation_id=correlation_id,
                )
            return OperationResult.failed(e, correlation_id)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="record_entry",
                    error_message=str(e),
                    organization_id=organization_id,
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_entry_recorded(
                organization_id=organization_id,
                entry_id=entry.id,
                description=entry.description,
                total=str(entry.total_debit),
                line_count=len(entry.lines),
                correlation_id=correlation_id,
            )
        return OperationResult(success=True, correlation_id=correlation_id, entry=entry)

    async def delete_entry(
        self,
        organization_id: UUID,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Delete a journal entry and its lines."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            await self._recorder.delete_entry(organization_id, entry_id)
        except LedgerError as e:
            if self._audit_logger:
                await self._audit_logger.log_rejected(
                    event_type=AuditEventType.ENTRY_REJECTED,
                    organization_id=organization_id,
                    error=e,
                    entity_id=entry_id,
                    correlation_id=correlation_id,
                )
            return OperationResult.failed(e, correlation_id)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="delete_entry",
                    error_message=str(e),
                    organization_id=organization_id,
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_entry_deleted(
                organization_id=organization_id,
                entry_id=entry_id,
                correlation_id=correlation_id,
            )
        return OperationResult(success=True, correlation_id=correlation_id)


class AppComponents(NamedTuple):
    """Everything a presentation layer needs, wired to one store."""

    storage: LedgerStorageInterface
    registry: AccountRegistry
    recorder: JournalRecorder
    facade: LedgerQueryFacade
    chart_flow: ChartOfAccountsFlow
    journal_flow: JournalEntryFlow
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        AppComponents; sheets_client is None when running in memory
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    sheets_client = None
    storage: LedgerStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e), fallback="in_memory")
            sheets_client = None
            storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger()  # Local-only logging

    registry = AccountRegistry(storage)
    recorder = JournalRecorder(storage, registry)
    facade = LedgerQueryFacade(
        recorder,
        registry,
        audit_logger=audit_logger,
        settings=settings.ledger,
    )

    return AppComponents(
        storage=storage,
        registry=registry,
        recorder=recorder,
        facade=facade,
        chart_flow=ChartOfAccountsFlow(registry, audit_logger),
        journal_flow=JournalEntryFlow(recorder, audit_logger),
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
