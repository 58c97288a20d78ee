"""
Shared fixtures for the Ledgerbook test suite.

Everything runs against the in-memory store; no test touches Google Sheets.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from ledgerbook.accounts import AccountRegistry
from ledgerbook.audit import AuditLogger
from ledgerbook.config import LedgerSettings
from ledgerbook.journal import JournalRecorder
from ledgerbook.models import Account, AccountType, JournalEntry, JournalLine
from ledgerbook.queries import LedgerQueryFacade
from ledgerbook.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


@pytest.fixture
def org_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_org_id() -> UUID:
    return uuid4()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def registry(storage) -> AccountRegistry:
    return AccountRegistry(storage)


@pytest.fixture
def recorder(storage, registry) -> JournalRecorder:
    return JournalRecorder(storage, registry)


@pytest_asyncio.fixture
async def chart(registry, org_id) -> dict[str, Account]:
    """The default chart seeded for org_id, keyed by account code."""
    accounts = await registry.seed_default_chart(org_id)
    return {account.code: account for account in accounts}


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        category_breakdown_size=5,
        recent_transactions_size=5,
        transaction_list_limit=50,
    )


@pytest.fixture
def facade(recorder, registry, audit_logger, ledger_settings) -> LedgerQueryFacade:
    return LedgerQueryFacade(
        recorder,
        registry,
        audit_logger=audit_logger,
        settings=ledger_settings,
        today=lambda: date(2024, 6, 15),
    )


@pytest.fixture
def make_account(org_id) -> Callable[..., Account]:
    """Build (not store) an account."""
    def _make(code: str, name: str, account_type: AccountType, **kwargs) -> Account:
        return Account(
            organization_id=kwargs.pop("organization_id", org_id),
            code=code,
            name=name,
            type=account_type,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_entry(org_id, user_id) -> Callable[..., JournalEntry]:
    """
    Build (not store) a journal entry with resolved lines.

    lines are (account, debit, credit) tuples; account may be None to
    simulate a line whose account could not be resolved.
    """
    def _make(
        entry_date: date,
        lines: list[tuple[Optional[Account], str, str]],
        description: str = "Test entry",
        created_at: Optional[datetime] = None,
    ) -> JournalEntry:
        entry = JournalEntry(
            organization_id=org_id,
            entry_date=entry_date,
            description=description,
            created_by=user_id,
            created_at=created_at or datetime.now(timezone.utc),
        )
        for account, debit, credit in lines:
            entry.lines.append(JournalLine(
                entry_id=entry.id,
                account_id=account.id if account else uuid4(),
                debit=Decimal(debit),
                credit=Decimal(credit),
                account_code=account.code if account else None,
                account_name=account.name if account else None,
                account_type=account.type if account else None,
            ))
        return entry
    return _make
