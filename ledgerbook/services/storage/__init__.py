"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests
and local runs. Both are swappable behind LedgerStorageInterface.
"""

from ledgerbook.services.storage.interface import (
    AuditStorageInterface,
    ConstraintViolationError,
    LedgerStorageInterface,
    MalformedRowError,
    NotFoundError,
    PartialWriteError,
    Row,
    StorageError,
    StorageUnavailableError,
    Table,
)
from ledgerbook.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from ledgerbook.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "Row",
    "Table",
    # Exceptions
    "ConstraintViolationError",
    "MalformedRowError",
    "NotFoundError",
    "PartialWriteError",
    "StorageError",
    "StorageUnavailableError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
