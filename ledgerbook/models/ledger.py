"""
Core Ledger Models for Ledgerbook

These models define the strict schemas for the chart of accounts and the
journal. They are designed to:
1. Enforce type safety at the storage boundary
2. Keep money as fixed-point decimals (never floats)
3. Hold the one and only sign convention of the ledger
4. Convert to and from plain storage rows

DESIGN DECISION: Rows coming back from storage are loosely typed
(strings, numbers, nulls). Every row is validated into one of these
models before any ledger logic sees it. A row that does not validate
is a storage problem, not something to paper over.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterator, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# MONEY
# =============================================================================

MONEY_PLACES = 2
CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """
    Convert a stored or user-supplied amount to a cent-scale Decimal.

    Raises ValueError for non-numeric values and for amounts with more
    fractional digits than the currency allows. Nothing is rounded.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    if amount != amount.quantize(CENT):
        raise ValueError(
            f"Amount {value} has more than {MONEY_PLACES} decimal places"
        )
    return amount.quantize(CENT)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class NormalBalance(str, Enum):
    """Side of the ledger that increases an account."""
    DEBIT = "debit"
    CREDIT = "credit"


class AccountType(str, Enum):
    """
    The five account classes of the accounting equation.

    CRITICAL: signed_delta() is the only place the sign convention is
    applied. Reports, balances and breakdowns all go through it.
    """
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def normal_balance(self) -> NormalBalance:
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT

    def signed_delta(self, debit: Decimal, credit: Decimal) -> Decimal:
        """
        Effect of a line on an account of this type.

        Debit-normal accounts (asset, expense) grow with debits;
        credit-normal accounts (liability, equity, income) grow with credits.
        """
        if self.normal_balance is NormalBalance.DEBIT:
            return debit - credit
        return credit - debit


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

ACCOUNT_COLUMNS = [
    "id",
    "organization_id",
    "code",
    "name",
    "type",
    "parent_account_id",
    "is_active",
    "created_at",
    "updated_at",
]


class Account(BaseModel):
    """
    A single account in an organization's chart of accounts.

    Accounts are soft-disabled with is_active=False. Historical journal
    lines against an inactive account keep counting in every report.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    organization_id: UUID = Field(
        ...,
        description="Owning organization (tenant scope)"
    )
    code: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Display code, unique within the organization"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Account name"
    )
    type: AccountType = Field(
        ...,
        description="Account class"
    )
    parent_account_id: Optional[UUID] = Field(
        default=None,
        description="Parent account in the same organization"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_row(self) -> dict[str, Any]:
        """Convert to a storage row (accounts table)."""
        return {
            "id": str(self.id),
            "organization_id": str(self.organization_id),
            "code": self.code,
            "name": self.name,
            "type": self.type.value,
            "parent_account_id": (
                str(self.parent_account_id) if self.parent_account_id else None
            ),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Account":
        """Build an Account from a storage row."""
        data = {key: row.get(key) for key in ACCOUNT_COLUMNS}
        if data["is_active"] is None:
            data["is_active"] = True
        for key in ("parent_account_id", "created_at", "updated_at"):
            if data[key] in (None, ""):
                data.pop(key)
        return cls.model_validate(data)


class AccountNode(BaseModel):
    """An account placed in the chart-of-accounts tree."""

    account: Account
    depth: int = Field(default=0, ge=0)
    children: list["AccountNode"] = Field(default_factory=list)

    def walk(self) -> Iterator["AccountNode"]:
        """Yield this node and all descendants, depth-first in code order."""
        yield self
        for child in self.children:
            yield from child.walk()


# =============================================================================
# JOURNAL
# =============================================================================

ENTRY_COLUMNS = [
    "id",
    "organization_id",
    "date",
    "description",
    "reference",
    "created_by",
    "created_at",
    "updated_at",
]

LINE_COLUMNS = [
    "id",
    "entry_id",
    "account_id",
    "debit",
    "credit",
    "description",
    "created_at",
    "updated_at",
]


class JournalLineInput(BaseModel):
    """
    A journal line as supplied by the caller.

    Only amount sign and scale are checked here. Whether exactly one side
    is positive, and whether the entry balances, is the recorder's call so
    it can report the precise ledger error.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID
    debit: Decimal = Field(
        default=ZERO,
        ge=0,
        decimal_places=MONEY_PLACES,
        description="Debit amount"
    )
    credit: Decimal = Field(
        default=ZERO,
        ge=0,
        decimal_places=MONEY_PLACES,
        description="Credit amount"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )


class JournalLine(BaseModel):
    """
    A persisted journal line.

    The account_* fields are resolved from the chart of accounts when the
    entry is read back; they are not stored on the line row.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    entry_id: UUID
    account_id: UUID
    debit: Decimal = Field(default=ZERO, ge=0, decimal_places=MONEY_PLACES)
    credit: Decimal = Field(default=ZERO, ge=0, decimal_places=MONEY_PLACES)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    # Resolved from the account, never persisted
    account_code: Optional[str] = None
    account_name: Optional[str] = None
    account_type: Optional[AccountType] = None

    @model_validator(mode='after')
    def validate_single_side(self) -> 'JournalLine':
        """A line is either a debit or a credit, never both, never neither."""
        if (self.debit > 0) == (self.credit > 0):
            raise ValueError(
                "Exactly one of debit or credit must be positive"
            )
        return self

    @property
    def is_debit(self) -> bool:
        return self.debit > 0

    @property
    def amount(self) -> Decimal:
        """The positive side of the line."""
        return self.debit if self.is_debit else self.credit

    @property
    def signed_amount(self) -> Optional[Decimal]:
        """Effect on the account's balance, or None if its type is unknown."""
        if self.account_type is None:
            return None
        return self.account_type.signed_delta(self.debit, self.credit)

    def to_row(self) -> dict[str, Any]:
        """Convert to a storage row (journal_lines table)."""
        return {
            "id": str(self.id),
            "entry_id": str(self.entry_id),
            "account_id": str(self.account_id),
            "debit": str(self.debit),
            "credit": str(self.credit),
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(
        cls,
        row: dict[str, Any],
        account: Optional[Account] = None,
    ) -> "JournalLine":
        """Build a JournalLine from a storage row, resolving its account if given."""
        data = {key: row.get(key) for key in LINE_COLUMNS}
        data["debit"] = to_money(data["debit"])
        data["credit"] = to_money(data["credit"])
        for key in ("description", "created_at", "updated_at"):
            if data[key] in (None, ""):
                data.pop(key)
        if account is not None:
            data["account_code"] = account.code
            data["account_name"] = account.name
            data["account_type"] = account.type
        return cls.model_validate(data)


class JournalEntry(BaseModel):
    """
    A balanced journal entry and its lines.

    CRITICAL: An entry and its lines are written as one unit. A stored
    entry with no lines, or lines without their entry, must never be
    visible to readers.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    organization_id: UUID
    entry_date: date = Field(
        ...,
        description="Accounting date (no time component)"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    reference: Optional[str] = Field(
        default=None,
        max_length=100,
        description="External reference such as an invoice number"
    )
    created_by: UUID = Field(
        ...,
        description="Acting user as supplied by the identity provider"
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    lines: list[JournalLine] = Field(default_factory=list)

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return bool(self.lines) and self.total_debit == self.total_credit

    def to_row(self) -> dict[str, Any]:
        """Convert the entry header to a storage row (journal_entries table)."""
        return {
            "id": str(self.id),
            "organization_id": str(self.organization_id),
            "date": self.entry_date.isoformat(),
            "description": self.description,
            "reference": self.reference,
            "created_by": str(self.created_by),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(
        cls,
        row: dict[str, Any],
        lines: Optional[list[JournalLine]] = None,
    ) -> "JournalEntry":
        """Build a JournalEntry from its header row and already-built lines."""
        data = {key: row.get(key) for key in ENTRY_COLUMNS}
        data["entry_date"] = data.pop("date")
        for key in ("reference", "created_at", "updated_at"):
            if data[key] in (None, ""):
                data.pop(key)
        data["lines"] = lines or []
        return cls.model_validate(data)
