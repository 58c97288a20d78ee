"""Services package."""

from ledgerbook.services.storage import (
    AuditStorageInterface,
    ConstraintViolationError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    MalformedRowError,
    NotFoundError,
    PartialWriteError,
    StorageError,
    StorageUnavailableError,
    Table,
)

__all__ = [
    "AuditStorageInterface",
    "ConstraintViolationError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "MalformedRowError",
    "NotFoundError",
    "PartialWriteError",
    "StorageError",
    "StorageUnavailableError",
    "Table",
]
