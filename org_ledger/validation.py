"""
Transaction Validation

Decides whether a proposed transaction is well-formed before any balance is
touched. Checks run in a fixed order and the first failure wins:

1. the amount is strictly positive
2. the populated endpoints match the transaction type
3. every populated endpoint resolves to an account in the organization
4. every populated endpoint account is active

Validation only reads from the account store.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .accounts import AccountStore
from .exceptions import LedgerError, InvalidInputError, NotFoundError, PreconditionFailedError
from .transactions import TransactionType


@dataclass(frozen=True)
class Rejection:
    """Why a transaction intent was refused"""
    code: str
    reason: str
    field: Optional[str] = None
    account_id: Optional[str] = None

    def to_error(self) -> LedgerError:
        if self.code == "ACCOUNT_NOT_FOUND":
            return NotFoundError(self.reason, code=self.code)
        if self.code == "ACCOUNT_INACTIVE":
            return PreconditionFailedError(self.reason, code=self.code, account_id=self.account_id)
        return InvalidInputError(self.reason, code=self.code)


def parse_amount(value: Any) -> Optional[Decimal]:
    """Exact decimal from str/int/Decimal input; floats go through their repr"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


class TransactionValidator:
    """Well-formedness checks for transaction intents"""

    def __init__(self, account_store: AccountStore):
        self.account_store = account_store

    def check(
        self,
        organization_id: str,
        transaction_type: TransactionType,
        amount: Any,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None
    ) -> Optional[Rejection]:
        """
        Validate a transaction intent

        Returns:
            None when the intent is acceptable, otherwise the first Rejection
        """
        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            return Rejection("NON_POSITIVE_AMOUNT", "Transaction amount must be greater than zero", field="amount")

        rejection = self.check_shape(transaction_type, from_account_id, to_account_id)
        if rejection:
            return rejection

        for field_name, account_id in (("from_account_id", from_account_id), ("to_account_id", to_account_id)):
            if not account_id:
                continue
            account = self.account_store.find(organization_id, account_id)
            if account is None:
                return Rejection(
                    "ACCOUNT_NOT_FOUND",
                    f"Account with ID '{account_id}' not found in your organization",
                    field=field_name,
                    account_id=account_id
                )
            if not account.is_active:
                return Rejection(
                    "ACCOUNT_INACTIVE",
                    f"Account '{account.name}' is inactive",
                    field=field_name,
                    account_id=account_id
                )

        return None

    def check_shape(
        self,
        transaction_type: TransactionType,
        from_account_id: Optional[str],
        to_account_id: Optional[str]
    ) -> Optional[Rejection]:
        """Endpoint shape by transaction type"""
        if transaction_type == TransactionType.INCOME:
            if not to_account_id:
                return Rejection(
                    "INCOME_MISSING_DESTINATION",
                    "Income transactions require a destination account (toAccountId)",
                    field="to_account_id"
                )
            if from_account_id:
                return Rejection(
                    "INCOME_HAS_SOURCE",
                    "Income transactions should not have a source account (fromAccountId)",
                    field="from_account_id"
                )
        elif transaction_type == TransactionType.EXPENSE:
            if not from_account_id:
                return Rejection(
                    "EXPENSE_MISSING_SOURCE",
                    "Expense transactions require a source account (fromAccountId)",
                    field="from_account_id"
                )
            if to_account_id:
                return Rejection(
                    "EXPENSE_HAS_DESTINATION",
                    "Expense transactions should not have a destination account (toAccountId)",
                    field="to_account_id"
                )
        elif transaction_type == TransactionType.TRANSFER:
            if not from_account_id or not to_account_id:
                return Rejection(
                    "TRANSFER_MISSING_ENDPOINT",
                    "Transfer transactions require both source (fromAccountId) and destination (toAccountId) accounts",
                    field="from_account_id" if not from_account_id else "to_account_id"
                )
            if from_account_id == to_account_id:
                return Rejection(
                    "TRANSFER_SAME_ACCOUNT",
                    "Cannot transfer funds to the same account",
                    field="to_account_id"
                )
        else:
            valid = ", ".join(t.value for t in TransactionType)
            return Rejection(
                "INVALID_TRANSACTION_TYPE",
                f"Invalid transaction type '{transaction_type}'. Must be one of: {valid}",
                field="type"
            )
        return None

    def validate(
        self,
        organization_id: str,
        transaction_type: TransactionType,
        amount: Any,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None
    ) -> Decimal:
        """
        Validate and raise on rejection

        Returns:
            The amount as an exact Decimal

        Raises:
            InvalidInputError, NotFoundError, PreconditionFailedError
        """
        rejection = self.check(organization_id, transaction_type, amount, from_account_id, to_account_id)
        if rejection:
            raise rejection.to_error()
        return parse_amount(amount)
