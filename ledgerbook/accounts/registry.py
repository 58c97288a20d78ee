"""
Account Registry

Maintains each organization's chart of accounts.

DESIGN DECISION: The registry checks every rule it can BEFORE writing:
- account codes are unique within an organization
- a parent must exist in the same organization
- the parent hierarchy is acyclic
The store enforces uniqueness again on insert; a constraint violation that
slips through a race is translated into the same typed error.

HIERARCHY POLICY:
An account whose parent reference does not resolve (parent deleted outside
the ledger, or a foreign id) is shown as a ROOT and logged. It is never
dropped from the tree: hiding an account would hide its balance.

DELETION POLICY:
Accounts referenced by journal lines cannot be deleted. Deactivate them
instead; their history keeps counting in every report.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from ledgerbook.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    DuplicateCodeError,
    InvalidParentError,
    LedgerValidationError,
)
from ledgerbook.models.ledger import Account, AccountNode, AccountType
from ledgerbook.services.storage import (
    ConstraintViolationError,
    LedgerStorageInterface,
    MalformedRowError,
    StorageError,
    Table,
)


logger = structlog.get_logger(__name__)

# Marks "argument not given" where None is a meaningful value
_UNSET: Any = object()


# =============================================================================
# DEFAULT CHART OF ACCOUNTS
# =============================================================================

DEFAULT_CHART: list[tuple[str, str, AccountType]] = [
    ("1000", "Cash and Cash Equivalents", AccountType.ASSET),
    ("1100", "Accounts Receivable", AccountType.ASSET),
    ("1200", "Inventory", AccountType.ASSET),
    ("1500", "Equipment", AccountType.ASSET),
    ("2000", "Accounts Payable", AccountType.LIABILITY),
    ("2100", "Accrued Expenses", AccountType.LIABILITY),
    ("2500", "Long-term Debt", AccountType.LIABILITY),
    ("3000", "Owner's Equity", AccountType.EQUITY),
    ("3100", "Retained Earnings", AccountType.EQUITY),
    ("4000", "Sales Revenue", AccountType.INCOME),
    ("4100", "Service Revenue", AccountType.INCOME),
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE),
    ("6000", "Operating Expenses", AccountType.EXPENSE),
    ("6100", "Rent Expense", AccountType.EXPENSE),
    ("6200", "Utilities Expense", AccountType.EXPENSE),
    ("6300", "Marketing Expense", AccountType.EXPENSE),
]


# =============================================================================
# PURE HELPERS
# =============================================================================

def account_from_row(row: dict[str, Any]) -> Account:
    """Validate a stored accounts row, raising MalformedRowError if it is broken."""
    try:
        return Account.from_row(row)
    except (ValidationError, ValueError) as e:
        raise MalformedRowError(Table.ACCOUNTS, row.get("id"), str(e))


def _by_code(account: Account) -> tuple[str, str]:
    return (account.code, str(account.id))


def build_account_tree(accounts: Iterable[Account]) -> list[AccountNode]:
    """
    Assemble accounts into a forest ordered by code.

    Accounts with a dangling parent reference become roots. Accounts
    caught in a stored parent cycle (which the registry never writes, but
    another writer might) are also promoted to roots rather than lost.
    """
    accounts = list(accounts)
    by_id = {account.id: account for account in accounts}

    children: dict[Optional[UUID], list[Account]] = {}
    dangling = []
    for account in accounts:
        parent_id = account.parent_account_id
        if parent_id is not None and (parent_id not in by_id or parent_id == account.id):
            dangling.append(str(account.id))
            parent_id = None
        children.setdefault(parent_id, []).append(account)

    if dangling:
        logger.warning(
            "dangling_parent_references",
            account_ids=dangling,
            count=len(dangling),
        )

    visited: set[UUID] = set()

    def build(account: Account, depth: int) -> AccountNode:
        visited.add(account.id)
        node = AccountNode(account=account, depth=depth)
        for child in sorted(children.get(account.id, []), key=_by_code):
            if child.id not in visited:
                node.children.append(build(child, depth + 1))
        return node

    roots = [build(account, 0) for account in sorted(children.get(None, []), key=_by_code)]

    unreachable = sorted(
        (account for account in accounts if account.id not in visited),
        key=_by_code,
    )
    if unreachable:
        logger.warning(
            "account_cycle_detected",
            account_ids=[str(account.id) for account in unreachable],
        )
        for account in unreachable:
            if account.id not in visited:
                roots.append(build(account, 0))
        roots.sort(key=lambda node: _by_code(node.account))

    return roots


def would_create_cycle(
    accounts_by_id: dict[UUID, Account],
    account_id: UUID,
    new_parent_id: Optional[UUID],
) -> bool:
    """
    Check whether making new_parent_id the parent of account_id closes a loop.

    True when the new parent is the account itself or one of its descendants.
    """
    seen: set[UUID] = set()
    current = new_parent_id
    while current is not None and current not in seen:
        if current == account_id:
            return True
        seen.add(current)
        parent = accounts_by_id.get(current)
        current = parent.parent_account_id if parent else None
    return False


def _matches(
    account: Account,
    search: Optional[str],
    account_type: Optional[AccountType],
    include_inactive: bool,
) -> bool:
    if not include_inactive and not account.is_active:
        return False
    if account_type is not None and account.type != account_type:
        return False
    if search:
        needle = search.strip().lower()
        if needle not in account.name.lower() and needle not in account.code.lower():
            return False
    return True


# =============================================================================
# REGISTRY
# =============================================================================

class AccountRegistry:
    """
    Chart-of-accounts operations for one store.

    Every method takes an explicit organization_id; nothing is read or
    written outside that organization.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def _load_accounts(self, organization_id: UUID) -> list[Account]:
        rows = await self._storage.select(
            Table.ACCOUNTS,
            {"organization_id": organization_id},
        )
        return [account_from_row(row) for row in rows]

    async def get_accounts_by_id(self, organization_id: UUID) -> dict[UUID, Account]:
        """All accounts of an organization keyed by id (one read)."""
        return {account.id: account for account in await self._load_accounts(organization_id)}

    def _check_parent(
        self,
        accounts_by_id: dict[UUID, Account],
        parent_account_id: UUID,
        account_id: Optional[UUID] = None,
    ) -> None:
        if parent_account_id not in accounts_by_id:
            raise InvalidParentError(
                parent_account_id,
                "parent account does not exist in this organization",
            )
        if account_id is not None and would_create_cycle(
            accounts_by_id, account_id, parent_account_id
        ):
            raise InvalidParentError(
                parent_account_id,
                "an account cannot be placed under itself or one of its descendants",
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_account(self, organization_id: UUID, account_id: UUID) -> Account:
        """
        Get one account.

        Raises:
            AccountNotFoundError: If the account is not in this organization
        """
        rows = await self._storage.select(
            Table.ACCOUNTS,
            {"organization_id": organization_id, "id": account_id},
        )
        if not rows:
            raise AccountNotFoundError(account_id)
        return account_from_row(rows[0])

    async def list_accounts(
        self,
        organization_id: UUID,
        *,
        search: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        include_inactive: bool = True,
    ) -> list[AccountNode]:
        """
        List the chart of accounts as a forest ordered by code.

        Filtering keeps the ancestors of every matching account so the
        hierarchy stays navigable.
        """
        accounts = await self._load_accounts(organization_id)
        filtered = search or account_type is not None or not include_inactive
        if not filtered:
            return build_account_tree(accounts)

        by_id = {account.id: account for account in accounts}
        keep: set[UUID] = set()
        for account in accounts:
            if not _matches(account, search, account_type, include_inactive):
                continue
            current: Optional[Account] = account
            while current is not None and current.id not in keep:
                keep.add(current.id)
                parent_id = current.parent_account_id
                current = by_id.get(parent_id) if parent_id else None

        return build_account_tree(a for a in accounts if a.id in keep)

    async def count_accounts(self, organization_id: UUID) -> int:
        rows = await self._storage.select(
            Table.ACCOUNTS,
            {"organization_id": organization_id},
        )
        return len(rows)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_account(
        self,
        organization_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        parent_account_id: Optional[UUID] = None,
    ) -> Account:
        """
        Create an account.

        Raises:
            DuplicateCodeError: If the code is already used in this organization
            InvalidParentError: If the parent is not an account of this organization
            LedgerValidationError: If code, name or type are malformed
        """
        try:
            account = Account(
                organization_id=organization_id,
                code=code,
                name=name,
                type=account_type,
                parent_account_id=parent_account_id,
            )
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid account: {e.errors()[0]['msg']}")

        accounts_by_id = await self.get_accounts_by_id(organization_id)
        if any(existing.code == account.code for existing in accounts_by_id.values()):
            raise DuplicateCodeError(account.code)
        if account.parent_account_id is not None:
            self._check_parent(accounts_by_id, account.parent_account_id)

        await self._insert(account)
        logger.info(
            "account_created",
            organization_id=str(organization_id),
            account_id=str(account.id),
            code=account.code,
        )
        return account

    async def _insert(self, account: Account) -> None:
        try:
            await self._storage.insert(Table.ACCOUNTS, account.to_row())
        except ConstraintViolationError as e:
            if e.constraint and "parent" in e.constraint:
                raise InvalidParentError(account.parent_account_id, str(e))
            raise DuplicateCodeError(account.code)

    async def update_account(
        self,
        organization_id: UUID,
        account_id: UUID,
        *,
        code: Optional[str] = None,
        name: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        parent_account_id: Optional[UUID] = _UNSET,
        is_active: Optional[bool] = None,
    ) -> Account:
        """
        Edit an account. Only the given fields change.

        Pass parent_account_id=None to make the account a root.

        Raises:
            AccountNotFoundError: If the account is not in this organization
            DuplicateCodeError: If the new code is already used
            InvalidParentError: If the new parent is missing or would create a cycle
        """
        accounts_by_id = await self.get_accounts_by_id(organization_id)
        current = accounts_by_id.get(account_id)
        if current is None:
            raise AccountNotFoundError(account_id)

        changes: dict[str, Any] = {}
        if code is not None:
            changes["code"] = code
        if name is not None:
            changes["name"] = name
        if account_type is not None:
            changes["type"] = account_type
        if parent_account_id is not _UNSET:
            changes["parent_account_id"] = parent_account_id
        if is_active is not None:
            changes["is_active"] = is_active
        if not changes:
            return current

        try:
            updated = Account.model_validate({
                **current.model_dump(),
                **changes,
                "updated_at": datetime.now(timezone.utc),
            })
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid account: {e.errors()[0]['msg']}")

        if updated.code != current.code and any(
            other.code == updated.code
            for other in accounts_by_id.values()
            if other.id != account_id
        ):
            raise DuplicateCodeError(updated.code)
        if (
            updated.parent_account_id is not None
            and updated.parent_account_id != current.parent_account_id
        ):
            self._check_parent(accounts_by_id, updated.parent_account_id, account_id)

        row = updated.to_row()
        changed_columns = {
            column: row[column]
            for column in [*changes.keys(), "updated_at"]
        }
        try:
            stored = await self._storage.update(Table.ACCOUNTS, account_id, changed_columns)
        except ConstraintViolationError as e:
            if e.constraint and "parent" in e.constraint:
                raise InvalidParentError(updated.parent_account_id, str(e))
            raise DuplicateCodeError(updated.code)

        logger.info(
            "account_updated",
            organization_id=str(organization_id),
            account_id=str(account_id),
            fields=sorted(changes.keys()),
        )
        return account_from_row(stored)

    async def deactivate_account(self, organization_id: UUID, account_id: UUID) -> Account:
        """
        Soft-disable an account. Idempotent.

        Its journal history keeps counting in every report; it only stops
        accepting new lines.
        """
        account = await self.get_account(organization_id, account_id)
        if not account.is_active:
            return account
        return await self.update_account(organization_id, account_id, is_active=False)

    async def delete_account(self, organization_id: UUID, account_id: UUID) -> None:
        """
        Hard-delete an account that no journal line references.

        Child accounts are kept and become roots.

        Raises:
            AccountNotFoundError: If the account is not in this organization
            AccountInUseError: If any journal line references the account
        """
        await self.get_account(organization_id, account_id)

        lines = await self._storage.select(Table.JOURNAL_LINES, {"account_id": account_id})
        if lines:
            raise AccountInUseError(account_id, len(lines))

        try:
            await self._storage.delete(Table.ACCOUNTS, account_id)
        except ConstraintViolationError:
            # A line was written between the check and the delete
            lines = await self._storage.select(Table.JOURNAL_LINES, {"account_id": account_id})
            raise AccountInUseError(account_id, len(lines))

        logger.info(
            "account_deleted",
            organization_id=str(organization_id),
            account_id=str(account_id),
        )

    async def seed_default_chart(self, organization_id: UUID) -> list[Account]:
        """
        Install the standard chart of accounts for a new organization.

        Only runs when the organization has no accounts at all; otherwise
        returns an empty list. Calling it twice never creates duplicates.

        CRITICAL: The chart is installed whole or not at all. If an insert
        fails, the accounts this call already created are deleted again
        before the error is raised, so a later call starts from zero
        accounts. A code clash means another seed got there first; this
        call backs out and returns an empty list.
        """
        if await self.count_accounts(organization_id) > 0:
            logger.info(
                "default_chart_skipped",
                organization_id=str(organization_id),
                reason="organization already has accounts",
            )
            return []

        created: list[Account] = []
        try:
            for code, name, account_type in DEFAULT_CHART:
                account = Account(
                    organization_id=organization_id,
                    code=code,
                    name=name,
                    type=account_type,
                )
                await self._insert(account)
                created.append(account)
        except DuplicateCodeError as e:
            await self._discard(organization_id, created)
            logger.info(
                "default_chart_skipped",
                organization_id=str(organization_id),
                reason="concurrent seed",
                code=e.account_code,
            )
            return []
        except StorageError:
            await self._discard(organization_id, created)
            raise

        logger.info(
            "default_chart_seeded",
            organization_id=str(organization_id),
            account_count=len(created),
        )
        return created

    async def _discard(self, organization_id: UUID, accounts: list[Account]) -> None:
        """Delete accounts created by an interrupted seed, newest first."""
        for account in reversed(accounts):
            try:
                await self._storage.delete(Table.ACCOUNTS, account.id)
            except StorageError as e:
                logger.error(
                    "default_chart_rollback_failed",
                    organization_id=str(organization_id),
                    account_id=str(account.id),
                    code=account.code,
                    error=str(e),
                )
        if accounts:
            logger.warning(
                "default_chart_rolled_back",
                organization_id=str(organization_id),
                account_count=len(accounts),
            )
