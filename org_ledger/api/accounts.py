"""
Account management endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import LedgerSystem, get_ledger_system, get_organization_id
from .schemas import CreateAccountRequest, UpdateAccountRequest, account_to_response
from ..accounts import AccountType
from ..exceptions import InvalidInputError


router = APIRouter()


def _account_type(value: str) -> AccountType:
    try:
        return AccountType(value.upper())
    except ValueError:
        valid = ", ".join(t.value for t in AccountType)
        raise InvalidInputError(f"Invalid account type '{value}'. Must be one of: {valid}", code="INVALID_ACCOUNT_TYPE")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create a new account"""
    account = system.account_manager.create_account(
        organization_id=organization_id,
        name=request.name,
        account_type=_account_type(request.type),
        currency=request.currency,
        description=request.description,
        is_active=request.is_active
    )
    return account_to_response(account)


@router.get("")
async def list_accounts(
    type: Optional[str] = None,
    is_active: Optional[bool] = None,
    currency: Optional[str] = None,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get all accounts for the organization"""
    accounts = system.account_manager.list_accounts(
        organization_id,
        account_type=_account_type(type) if type else None,
        is_active=is_active,
        currency=currency
    )
    return [account_to_response(account) for account in accounts]


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get account details"""
    return account_to_response(system.account_manager.get_account(organization_id, account_id))


@router.patch("/{account_id}")
async def update_account(
    account_id: str,
    request: UpdateAccountRequest,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Update account"""
    account = system.account_manager.update_account(
        organization_id,
        account_id,
        name=request.name,
        account_type=_account_type(request.type) if request.type else None,
        currency=request.currency,
        description=request.description,
        is_active=request.is_active
    )
    return account_to_response(account)


@router.delete("/{account_id}")
async def delete_account(
    account_id: str,
    organization_id: str = Depends(get_organization_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete an account that no transaction references"""
    system.account_manager.delete_account(organization_id, account_id)
    return {"message": "Account deleted successfully"}
