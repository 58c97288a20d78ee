"""
Ledger Error Taxonomy

DESIGN DECISION: Caller errors are typed exceptions with a stable code.
The presentation layer can show `message` verbatim and branch on `code`
without parsing strings.

Two families:
- LedgerValidationError: the request itself is wrong (unbalanced entry,
  unknown account, duplicate code...). Never retried.
- LedgerIntegrityError: the request conflicts with stored data (account
  still referenced, missing row). Refused outright, no corrective cascade.

Storage failures are NOT part of this taxonomy; they live in
ledgerbook.services.storage.interface and propagate separately.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID


class LedgerError(Exception):
    """Base class for all ledger caller errors."""

    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Serializable form for results and audit details."""
        return {"code": self.code, "message": self.message}


class LedgerValidationError(LedgerError):
    """The request is invalid on its own terms."""

    code = "validation_error"


class LedgerIntegrityError(LedgerError):
    """The request conflicts with the stored ledger."""

    code = "integrity_error"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class UnbalancedEntryError(LedgerValidationError):
    """Debits and credits of an entry do not match."""

    code = "unbalanced_entry"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = total_debit - total_credit
        super().__init__(
            f"Entry does not balance: debits {total_debit} != credits {total_credit} "
            f"(difference {self.difference})"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            total_debit=str(self.total_debit),
            total_credit=str(self.total_credit),
            difference=str(self.difference),
        )
        return data


class InvalidLineError(LedgerValidationError):
    """A journal line is malformed (both sides, neither side, bad amount)."""

    code = "invalid_line"

    def __init__(self, message: str, line_index: Optional[int] = None):
        self.line_index = line_index
        if line_index is not None:
            message = f"Line {line_index + 1}: {message}"
        super().__init__(message)


class UnknownAccountError(LedgerValidationError):
    """One or more account ids do not resolve to an active account."""

    code = "unknown_account"

    def __init__(self, account_ids: Iterable[UUID]):
        self.account_ids = sorted(set(account_ids), key=str)
        ids = ", ".join(str(a) for a in self.account_ids)
        super().__init__(f"Unknown or inactive account(s): {ids}")


class DuplicateCodeError(LedgerValidationError):
    """Account code already used in this organization."""

    code = "duplicate_code"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class InvalidParentError(LedgerValidationError):
    """Parent account is missing, foreign, or would create a cycle."""

    code = "invalid_parent"

    def __init__(self, parent_account_id: UUID, reason: str):
        self.parent_account_id = parent_account_id
        self.reason = reason
        super().__init__(f"Invalid parent account {parent_account_id}: {reason}")


# =============================================================================
# INTEGRITY ERRORS
# =============================================================================

class AccountInUseError(LedgerIntegrityError):
    """Account cannot be deleted while journal lines reference it."""

    code = "account_in_use"

    def __init__(self, account_id: UUID, line_count: int):
        self.account_id = account_id
        self.line_count = line_count
        super().__init__(
            f"Account {account_id} is referenced by {line_count} journal line(s); "
            "deactivate it instead"
        )


class AccountNotFoundError(LedgerIntegrityError):
    """Account does not exist in this organization."""

    code = "account_not_found"

    def __init__(self, account_id: UUID):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class EntryNotFoundError(LedgerIntegrityError):
    """Journal entry does not exist in this organization."""

    code = "entry_not_found"

    def __init__(self, entry_id: UUID):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")
