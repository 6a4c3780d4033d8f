"""
Transaction endpoints
"""

from datetime import datetime
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, status

from ..accounts import Account
from ..transactions import Transaction
from .dependencies import LedgerSystem, get_ledger_system, get_organization_id
from .schemas import CreateTransactionRequest, UpdateTransactionRequest, transaction_to_response


router = APIRouter()


def endpoint_accounts(system: LedgerSystem, organization_id: str, transactions: List[Transaction]) -> Dict[str, Account]:
    """Accounts referenced by the given transactions, keyed by id"""
    ids = {i for t in transactions for i in (t.from_account_id, t.to_account_id) if i}
    found = (system.account_store.find(organization_id, i) for i in ids)
    return {account.id: account for account in found if account}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    request: CreateTransactionRequest,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create a transaction and apply its balance effect"""
    transaction = system.transaction_manager.create_transaction(
        organization_id=organization_id,
        transaction_type=request.type,
        amount=request.amount,
        currency=request.currency,
        description=request.description,
        date=request.date,
        category=request.category,
        tags=request.tags,
        from_account_id=request.from_account_id,
        to_account_id=request.to_account_id
    )
    return transaction_to_response(transaction, endpoint_accounts(system, organization_id, [transaction]))


@router.get("")
async def list_transactions(
    account_id: Optional[str] = None,
    type: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    category: Optional[str] = None,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get transactions for the organization, most recent first"""
    transactions = system.transaction_manager.list_transactions(
        organization_id,
        account_id=account_id,
        transaction_type=type,
        start_date=start_date,
        end_date=end_date,
        category=category
    )
    accounts = endpoint_accounts(system, organization_id, transactions)
    return [transaction_to_response(t, accounts) for t in transactions]


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get transaction by ID"""
    transaction = system.transaction_manager.get_transaction(organization_id, transaction_id)
    return transaction_to_response(transaction, endpoint_accounts(system, organization_id, [transaction]))


@router.patch("/{transaction_id}")
async def update_transaction(
    transaction_id: str,
    request: UpdateTransactionRequest,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Update a transaction, moving balances from its old effect to its new one"""
    transaction = system.transaction_manager.update_transaction(
        organization_id, transaction_id, **request.to_changes()
    )
    return transaction_to_response(transaction, endpoint_accounts(system, organization_id, [transaction]))


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete a transaction and revert its balance effect"""
    system.transaction_manager.delete_transaction(organization_id, transaction_id)
    return {"message": "Transaction deleted successfully"}
