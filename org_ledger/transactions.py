"""
Transaction Records

Typed income, expense and transfer records and their organization-scoped
persistence. Balance effects and the create/update/delete lifecycle live in
``balances`` and ``lifecycle``.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .tenancy import OrganizationScopedStorage
from .exceptions import NotFoundError


DEFAULT_CURRENCY = "USD"


class TransactionType(Enum):
    """Types of ledger transactions"""
    INCOME = "INCOME"      # Money entering one account
    EXPENSE = "EXPENSE"    # Money leaving one account
    TRANSFER = "TRANSFER"  # Money moving between two accounts


@dataclass
class Transaction(StorageRecord):
    """
    Amount-bearing event that moves one or two account balances
    """
    organization_id: str
    transaction_type: TransactionType
    amount: Decimal
    date: datetime
    currency: str = DEFAULT_CURRENCY
    description: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None

    @property
    def account_ids(self) -> List[str]:
        """Populated endpoints, source first"""
        return [a for a in (self.from_account_id, self.to_account_id) if a]

    def references(self, account_id: str) -> bool:
        return account_id in (self.from_account_id, self.to_account_id)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['transaction_type'] = self.transaction_type.value
        result['amount'] = str(self.amount)
        result['date'] = self.date.isoformat()
        result['tags'] = list(self.tags)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = dict(data)
        data['transaction_type'] = TransactionType(data['transaction_type'])
        data['amount'] = Decimal(str(data['amount']))
        data['date'] = datetime.fromisoformat(data['date'])
        data['tags'] = list(data.get('tags') or [])
        return super().from_dict(data)


class TransactionStore:
    """Organization-scoped persistence for transaction records"""

    table_name = "transactions"

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def scope(self, organization_id: str) -> OrganizationScopedStorage:
        return OrganizationScopedStorage(self.storage, organization_id)

    def find(self, organization_id: str, transaction_id: str) -> Optional[Transaction]:
        data = self.scope(organization_id).load(self.table_name, transaction_id)
        return Transaction.from_dict(data) if data else None

    def get(self, organization_id: str, transaction_id: str) -> Transaction:
        transaction = self.find(organization_id, transaction_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction with ID '{transaction_id}' not found in your organization",
                code="TRANSACTION_NOT_FOUND"
            )
        return transaction

    def list(self, organization_id: str, filters: Optional[Dict[str, Any]] = None) -> List[Transaction]:
        records = self.scope(organization_id).find(self.table_name, filters or {})
        return [Transaction.from_dict(data) for data in records]

    def save(self, transaction: Transaction) -> None:
        self.scope(transaction.organization_id).save(self.table_name, transaction.id, transaction.to_dict())

    def remove(self, organization_id: str, transaction_id: str) -> bool:
        return self.scope(organization_id).delete(self.table_name, transaction_id)

    def count(self, organization_id: str) -> int:
        return self.scope(organization_id).count(self.table_name)

    def count_referencing(self, organization_id: str, account_id: str) -> int:
        """Number of live transactions naming the account as either endpoint"""
        scope = self.scope(organization_id)
        outgoing = scope.find(self.table_name, {"from_account_id": account_id})
        incoming = scope.find(self.table_name, {"to_account_id": account_id})
        return len({t['id'] for t in outgoing} | {t['id'] for t in incoming})
