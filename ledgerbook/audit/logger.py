"""
Audit Logger

DESIGN DECISION: Every change to the books, every refused change and
every degraded read is logged. This provides:
1. Traceability of who changed the chart or the journal
2. Debugging capability when an entry is refused
3. A record of reads that fell back to an empty result

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgerbook.exceptions import LedgerError
from ledgerbook.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from ledgerbook.models.ledger import Account
from ledgerbook.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through the standard library at the given level."""
    logging.basicConfig(format="%(message)s", level=log_level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_changed(
        self,
        event_type: AuditEventType,
        account: Account,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an account being created, updated, deactivated or deleted."""
        event = AuditEventBuilder.account_changed(
            event_type=event_type,
            organization_id=account.organization_id,
            account_id=account.id,
            code=account.code,
            name=account.name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_chart_seeded(
        self,
        organization_id: UUID,
        account_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.chart_seeded(
            organization_id=organization_id,
            account_count=account_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_recorded(
        self,
        organization_id: UUID,
        entry_id: UUID,
        description: str,
        total: str,
        line_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a journal entry being recorded."""
        event = AuditEventBuilder.entry_recorded(
            organization_id=organization_id,
            entry_id=entry_id,
            description=description,
            total=total,
            line_count=line_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_deleted(
        self,
        organization_id: UUID,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entry_deleted(
            organization_id=organization_id,
            entry_id=entry_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rejected(
        self,
        event_type: AuditEventType,
        organization_id: UUID,
        error: LedgerError,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a refused account or journal operation."""
        event = AuditEventBuilder.operation_rejected(
            event_type=event_type,
            organization_id=organization_id,
            error_code=error.code,
            error_message=error.message,
            details=error.to_dict(),
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_report_generated(
        self,
        organization_id: UUID,
        report_type: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.report_generated(
            organization_id=organization_id,
            report_type=report_type,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_best_effort_degraded(
        self,
        organization_id: UUID,
        view: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a read that returned an empty result because storage failed."""
        event = AuditEventBuilder.best_effort_read_degraded(
            organization_id=organization_id,
            view=view,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        organization_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage failure."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            organization_id=organization_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording an entry).
    Pass it through all subsequent operations.
    """
    return uuid4()
