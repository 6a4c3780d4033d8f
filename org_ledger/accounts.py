"""
Account Management Module

Manages an organization's chart of accounts. Accounts are tagged as assets,
liabilities, equity, revenue or expenses; their balance is never written
directly but moved by signed deltas from transaction effects.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .tenancy import OrganizationScopedStorage
from .transactions import DEFAULT_CURRENCY, TransactionStore
from .exceptions import ConflictError, InvalidInputError, NotFoundError, PreconditionFailedError
from .logging_config import get_logger, log_action


class AccountType(Enum):
    """Standard accounting account types"""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


@dataclass
class Account(StorageRecord):
    """
    Named balance-holding entity owned by one organization
    """
    organization_id: str
    name: str
    account_type: AccountType
    balance: Decimal = Decimal('0')
    currency: str = DEFAULT_CURRENCY
    is_active: bool = True
    description: Optional[str] = None

    @property
    def is_asset_account(self) -> bool:
        return self.account_type == AccountType.ASSET

    @property
    def is_liability_account(self) -> bool:
        return self.account_type == AccountType.LIABILITY

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['account_type'] = self.account_type.value
        result['balance'] = str(self.balance)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        data['account_type'] = AccountType(data['account_type'])
        data['balance'] = Decimal(str(data.get('balance', '0')))
        return super().from_dict(data)


class AccountStore:
    """
    Account persistence adapter

    Every operation is scoped by organization: an id owned by another
    organization takes the same path as an unknown id.
    """

    table_name = "accounts"

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def scope(self, organization_id: str) -> OrganizationScopedStorage:
        return OrganizationScopedStorage(self.storage, organization_id)

    def find(self, organization_id: str, account_id: str) -> Optional[Account]:
        """Point lookup, None when absent or outside the organization"""
        data = self.scope(organization_id).load(self.table_name, account_id)
        return Account.from_dict(data) if data else None

    def get(self, organization_id: str, account_id: str) -> Account:
        """Point lookup raising NotFoundError"""
        account = self.find(organization_id, account_id)
        if account is None:
            raise NotFoundError("Account not found", code="ACCOUNT_NOT_FOUND")
        return account

    def find_by_name(self, organization_id: str, name: str) -> Optional[Account]:
        found = self.scope(organization_id).find(self.table_name, {"name": name})
        return Account.from_dict(found[0]) if found else None

    def list(self, organization_id: str, filters: Optional[Dict[str, Any]] = None) -> List[Account]:
        records = self.scope(organization_id).find(self.table_name, filters or {})
        return [Account.from_dict(data) for data in records]

    def save(self, account: Account) -> None:
        self.scope(account.organization_id).save(self.table_name, account.id, account.to_dict())

    def adjust_balance(self, organization_id: str, account_id: str, delta: Decimal) -> Decimal:
        """
        Apply a signed delta to the stored balance as one atomic increment

        Returns:
            The new balance

        Raises:
            NotFoundError: Account absent or outside the organization
        """
        try:
            return self.scope(organization_id).increment(self.table_name, account_id, "balance", delta)
        except KeyError:
            raise NotFoundError(
                f"Account with ID '{account_id}' not found in your organization",
                code="ACCOUNT_NOT_FOUND"
            )

    def remove(self, organization_id: str, account_id: str) -> bool:
        return self.scope(organization_id).delete(self.table_name, account_id)


class AccountManager:
    """
    Manages account lifecycle within an organization
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_store: Optional[AccountStore] = None,
        transaction_store: Optional[TransactionStore] = None,
        default_currency: str = DEFAULT_CURRENCY
    ):
        self.storage = storage
        self.account_store = account_store or AccountStore(storage)
        self.transaction_store = transaction_store or TransactionStore(storage)
        self.default_currency = default_currency
        self.logger = get_logger("org_ledger.accounts")

    def create_account(
        self,
        organization_id: str,
        name: str,
        account_type: AccountType,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        is_active: bool = True
    ) -> Account:
        """
        Create a new account with a zero balance

        Args:
            organization_id: Owning organization
            name: Account name, unique within the organization
            account_type: Accounting category
            currency: Currency code (defaults to the manager default)
            description: Optional free text
            is_active: Whether transactions may reference the account

        Returns:
            Created Account object

        Raises:
            InvalidInputError: Empty name
            ConflictError: Name already used in this organization
        """
        if not name or not name.strip():
            raise InvalidInputError("Account name is required", code="ACCOUNT_NAME_REQUIRED")

        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            organization_id=organization_id,
            name=name,
            account_type=AccountType(account_type),
            currency=currency or self.default_currency,
            is_active=is_active,
            description=description
        )

        with self.storage.atomic():
            self._ensure_unique_name(organization_id, name)
            self.account_store.save(account)

        log_action(
            self.logger, "info", f"Account created: {account.account_type.value}",
            action="create_account", resource=f"account:{account.id}",
            organization_id=organization_id,
            extra={"name": name, "currency": account.currency}
        )
        return account

    def get_account(self, organization_id: str, account_id: str) -> Account:
        return self.account_store.get(organization_id, account_id)

    def list_accounts(
        self,
        organization_id: str,
        account_type: Optional[AccountType] = None,
        is_active: Optional[bool] = None,
        currency: Optional[str] = None
    ) -> List[Account]:
        """List accounts, newest first"""
        filters: Dict[str, Any] = {}
        if account_type is not None:
            filters['account_type'] = AccountType(account_type).value
        if is_active is not None:
            filters['is_active'] = is_active
        if currency is not None:
            filters['currency'] = currency

        accounts = self.account_store.list(organization_id, filters)
        return sorted(accounts, key=lambda a: a.created_at, reverse=True)

    def update_account(
        self,
        organization_id: str,
        account_id: str,
        name: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> Account:
        """Update descriptive fields; the balance is not writable here"""
        with self.storage.atomic():
            account = self.account_store.get(organization_id, account_id)

            if name is not None and name != account.name:
                if not name.strip():
                    raise InvalidInputError("Account name is required", code="ACCOUNT_NAME_REQUIRED")
                self._ensure_unique_name(organization_id, name)
                account.name = name
            if account_type is not None:
                account.account_type = AccountType(account_type)
            if currency is not None:
                account.currency = currency
            if description is not None:
                account.description = description
            if is_active is not None:
                account.is_active = is_active

            account.updated_at = datetime.now(timezone.utc)
            self.account_store.save(account)

        log_action(
            self.logger, "info", "Account updated",
            action="update_account", resource=f"account:{account.id}",
            organization_id=organization_id
        )
        return account

    def delete_account(self, organization_id: str, account_id: str) -> None:
        """
        Delete an account no transaction references

        Raises:
            NotFoundError: Account absent or outside the organization
            PreconditionFailedError: Transactions still reference the account
        """
        with self.storage.atomic():
            account = self.account_store.get(organization_id, account_id)
            references = self.transaction_store.count_referencing(organization_id, account_id)
            if references:
                log_action(
                    self.logger, "warning", "Account deletion blocked by transaction references",
                    action="delete_account", resource=f"account:{account_id}",
                    organization_id=organization_id, extra={"references": references}
                )
                raise PreconditionFailedError(
                    f"Account '{account.name}' is referenced by {references} transaction(s) and cannot be deleted",
                    code="ACCOUNT_HAS_TRANSACTIONS",
                    account_id=account_id
                )
            self.account_store.remove(organization_id, account_id)

        log_action(
            self.logger, "info", "Account deleted",
            action="delete_account", resource=f"account:{account_id}",
            organization_id=organization_id
        )

    def _ensure_unique_name(self, organization_id: str, name: str) -> None:
        if self.account_store.find_by_name(organization_id, name):
            raise ConflictError(
                f"Account with name '{name}' already exists in your organization",
                code="DUPLICATE_ACCOUNT_NAME"
            )
