"""
Organization endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import LedgerSystem, get_current_user, get_ledger_system, require_organization_access
from .schemas import CreateOrganizationRequest, InviteMemberRequest, UpdateOrganizationRequest


router = APIRouter()


def organization_to_response(organization, role):
    return {
        "id": organization.id,
        "name": organization.name,
        "role": role,
        "created_at": organization.created_at.isoformat(),
        "updated_at": organization.updated_at.isoformat(),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_organization(
    request: CreateOrganizationRequest,
    user_id: str = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create an organization with the caller as admin"""
    organization = system.directory.create_organization(request.name, user_id)
    return organization_to_response(organization, "admin")


@router.get("")
async def list_organizations(
    user_id: str = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Organizations the caller belongs to"""
    return [
        {
            "id": organization.id,
            "name": organization.name,
            "role": system.directory.get_user_role(organization.id, user_id).value,
        }
        for organization in system.directory.list_organizations_for_user(user_id)
    ]


@router.get("/{organization_id}")
async def get_organization(
    organization_id: str,
    user_id: str = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Organization details with the caller's role"""
    require_organization_access(system, organization_id, user_id)
    organization = system.directory.get_organization(organization_id)
    return organization_to_response(organization, system.directory.get_user_role(organization_id, user_id).value)


@router.patch("/{organization_id}")
async def update_organization(
    organization_id: str,
    request: UpdateOrganizationRequest,
    user_id: str = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Rename an organization (admins only)"""
    require_organization_access(system, organization_id, user_id)
    organization = system.directory.rename_organization(organization_id, request.name, requesting_user_id=user_id)
    return organization_to_response(organization, "admin")


@router.get("/{organization_id}/summary")
async def get_organization_summary(
    organization_id: str,
    user_id: str = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Balances grouped by currency, net worth and counts"""
    require_organization_access(system, organization_id, user_id)
    return system.reporting_engine.organization_summary(organization_id).to_dict()


@router.post("/{organization_id}/members", status_code=status.HTTP_201_CREATED)
async def invite_member(
    organization_id: str,
    request: InviteMemberRequest,
    user_id: str = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Add a member (admins only)"""
    require_organization_access(system, organization_id, user_id)
    membership = system.directory.add_member(
        organization_id, request.user_id, request.role, requesting_user_id=user_id
    )
    return {
        "id": membership.id,
        "user_id": membership.user_id,
        "role": membership.role.value,
        "created_at": membership.created_at.isoformat(),
    }
