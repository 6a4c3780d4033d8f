"""
Balance Mutation Engine

Maps a transaction's (type, amount, endpoints) to signed balance deltas and
applies them as one atomic unit:

    INCOME    to   += amount
    EXPENSE   from -= amount
    TRANSFER  from -= amount, to += amount

``revert`` applies the negated deltas. Amounts are Decimals, so
``revert(apply(t))`` restores balances exactly.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List

from .accounts import AccountStore
from .storage import StorageInterface
from .transactions import Transaction, TransactionType
from .exceptions import InvalidInputError
from .logging_config import get_logger, log_action


@dataclass(frozen=True)
class BalanceDelta:
    """One signed change to one account's balance"""
    account_id: str
    delta: Decimal

    def negated(self) -> 'BalanceDelta':
        return BalanceDelta(self.account_id, -self.delta)


def transaction_effects(transaction: Transaction) -> List[BalanceDelta]:
    """
    Deltas caused by applying a transaction

    Raises:
        InvalidInputError: Endpoints do not match the transaction type
    """
    amount = transaction.amount
    kind = transaction.transaction_type

    if kind == TransactionType.INCOME and transaction.to_account_id:
        return [BalanceDelta(transaction.to_account_id, amount)]
    if kind == TransactionType.EXPENSE and transaction.from_account_id:
        return [BalanceDelta(transaction.from_account_id, -amount)]
    if kind == TransactionType.TRANSFER and transaction.from_account_id and transaction.to_account_id:
        return [
            BalanceDelta(transaction.from_account_id, -amount),
            BalanceDelta(transaction.to_account_id, amount),
        ]

    raise InvalidInputError(
        f"Transaction {transaction.id} has endpoints that do not match type {kind.value}",
        code="ENDPOINT_MISMATCH"
    )


class BalanceEngine:
    """Applies and reverts transaction effects on account balances"""

    def __init__(self, storage: StorageInterface, account_store: AccountStore):
        self.storage = storage
        self.account_store = account_store
        self.logger = get_logger("org_ledger.balances")

    def apply(self, transaction: Transaction) -> None:
        """Apply a transaction's effect; all legs commit together or not at all"""
        self._commit(transaction, transaction_effects(transaction), "apply")

    def revert(self, transaction: Transaction) -> None:
        """Undo a transaction's effect; all legs commit together or not at all"""
        deltas = [d.negated() for d in transaction_effects(transaction)]
        self._commit(transaction, deltas, "revert")

    def _commit(self, transaction: Transaction, deltas: List[BalanceDelta], action: str) -> None:
        with self.storage.atomic():
            for leg in deltas:
                self.account_store.adjust_balance(transaction.organization_id, leg.account_id, leg.delta)

        log_action(
            self.logger, "debug", f"Balance effect {action}",
            action=f"{action}_balance_effect", resource=f"transaction:{transaction.id}",
            organization_id=transaction.organization_id,
            extra={"deltas": {d.account_id: str(d.delta) for d in deltas}}
        )
