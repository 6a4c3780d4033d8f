"""
Pydantic schemas for API requests and responses
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field

from ..accounts import Account
from ..transactions import Transaction


# Amounts arrive as JSON strings or numbers and are parsed to Decimal by the core
AmountInput = Union[str, int, float]


# Organization schemas
class CreateOrganizationRequest(BaseModel):
    name: str = Field(..., min_length=1)


class UpdateOrganizationRequest(BaseModel):
    name: str = Field(..., min_length=1)


class InviteMemberRequest(BaseModel):
    user_id: str
    role: str = Field("member", description="Member role (admin, member, viewer)")


# Account schemas
class CreateAccountRequest(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., description="Account type (ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE)")
    currency: Optional[str] = Field(None, description="Currency code, defaults to USD")
    description: Optional[str] = None
    is_active: bool = True


class UpdateAccountRequest(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


# Transaction schemas
class CreateTransactionRequest(BaseModel):
    type: str = Field(..., description="Transaction type (INCOME, EXPENSE, TRANSFER)")
    amount: AmountInput = Field(..., description="Decimal amount, preferably as a string")
    currency: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None


class UpdateTransactionRequest(BaseModel):
    type: Optional[str] = None
    amount: Optional[AmountInput] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None

    def to_changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, keyed for the lifecycle manager"""
        changes = self.model_dump(exclude_unset=True)
        if 'type' in changes:
            changes['transaction_type'] = changes.pop('type')
        return changes


def account_to_response(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "organization_id": account.organization_id,
        "name": account.name,
        "type": account.account_type.value,
        "balance": str(account.balance),
        "currency": account.currency,
        "description": account.description,
        "is_active": account.is_active,
        "created_at": account.created_at.isoformat(),
        "updated_at": account.updated_at.isoformat(),
    }


def account_stub(account: Optional[Account]) -> Optional[Dict[str, str]]:
    return {"id": account.id, "name": account.name} if account else None


def transaction_to_response(
    transaction: Transaction, accounts: Optional[Dict[str, Account]] = None
) -> Dict[str, Any]:
    """Serialize a transaction; ``accounts`` maps endpoint ids to accounts for the name stubs"""
    accounts = accounts or {}
    return {
        "id": transaction.id,
        "organization_id": transaction.organization_id,
        "type": transaction.transaction_type.value,
        "amount": str(transaction.amount),
        "currency": transaction.currency,
        "description": transaction.description,
        "date": transaction.date.isoformat(),
        "category": transaction.category,
        "tags": list(transaction.tags),
        "from_account_id": transaction.from_account_id,
        "to_account_id": transaction.to_account_id,
        "from_account": account_stub(accounts.get(transaction.from_account_id)),
        "to_account": account_stub(accounts.get(transaction.to_account_id)),
        "created_at": transaction.created_at.isoformat(),
        "updated_at": transaction.updated_at.isoformat(),
    }
