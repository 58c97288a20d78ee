"""
Audit Models for Ledgerbook

Every change to the chart of accounts or the journal is logged for audit
purposes, and so is every rejected change. This provides:
1. Traceability of who recorded what, and when
2. Debugging information when an entry is refused
3. A visible signal when a read had to fall back to an empty result

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
The audit log is an operational trail, not an accounting audit trail;
the journal itself stays the source of truth.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "organization_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Chart of accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNT_REJECTED = "account_rejected"
    CHART_SEEDED = "chart_seeded"

    # Journal
    ENTRY_RECORDED = "entry_recorded"
    ENTRY_REJECTED = "entry_rejected"
    ENTRY_DELETED = "entry_deleted"

    # Read side
    REPORT_GENERATED = "report_generated"
    BEST_EFFORT_READ_DEGRADED = "best_effort_read_degraded"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Tenant scope
    organization_id: Optional[UUID] = Field(
        default=None,
        description="Organization the event belongs to"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'journal_entry', 'report')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one user request)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "organization_id": str(self.organization_id) if self.organization_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Columns follow AUDIT_COLUMNS.
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.organization_id) if self.organization_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]

    @classmethod
    def from_sheets_row(cls, row: list) -> "AuditEvent":
        """Convert a spreadsheet row back into an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return cls(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            organization_id=UUID(safe_get(4)) if safe_get(4) else None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_recorded(org_id, entry_id, ...)
        event = AuditEventBuilder.entry_rejected(org_id, error, correlation_id)
    """

    @staticmethod
    def account_changed(
        event_type: AuditEventType,
        organization_id: UUID,
        account_id: UUID,
        code: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            organization_id=organization_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account {verb}: {code} {name}",
            details={"code": code, "name": name},
            is_user_action=True,
        )

    @staticmethod
    def chart_seeded(
        organization_id: UUID,
        account_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHART_SEEDED,
            organization_id=organization_id,
            entity_type="organization",
            entity_id=organization_id,
            correlation_id=correlation_id,
            description=f"Default chart of accounts seeded ({account_count} accounts)",
            details={"account_count": account_count},
            is_user_action=True,
        )

    @staticmethod
    def entry_recorded(
        organization_id: UUID,
        entry_id: UUID,
        description: str,
        total: str,
        line_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_RECORDED,
            organization_id=organization_id,
            entity_type="journal_entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Journal entry recorded: {description[:200]} ({total})",
            details={"total": total, "line_count": line_count},
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(
        organization_id: UUID,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            organization_id=organization_id,
            entity_type="journal_entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="Journal entry deleted",
            is_user_action=True,
        )

    @staticmethod
    def operation_rejected(
        event_type: AuditEventType,
        organization_id: UUID,
        error_code: str,
        error_message: str,
        details: Optional[dict] = None,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        entity_type = (
            "journal_entry"
            if event_type == AuditEventType.ENTRY_REJECTED
            else "account"
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Operation rejected: {error_code}",
            details=details or {},
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def report_generated(
        organization_id: UUID,
        report_type: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            severity=AuditSeverity.DEBUG,
            organization_id=organization_id,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Report generated: {report_type}",
            details={"report_type": report_type, **(details or {})},
        )

    @staticmethod
    def best_effort_read_degraded(
        organization_id: UUID,
        view: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BEST_EFFORT_READ_DEGRADED,
            severity=AuditSeverity.WARNING,
            organization_id=organization_id,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Best-effort read of {view} returned an empty result",
            details={"view": view},
            error_message=error_message,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        organization_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            organization_id=organization_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
