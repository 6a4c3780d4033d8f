"""
Multi-Tenancy Support Module

Organizations are the tenant boundary: every account and transaction belongs
to exactly one. ``OrganizationScopedStorage`` enforces that boundary on top of
any ``StorageInterface``, and ``OrganizationDirectory`` answers the
"may this caller act within organization X" question.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .exceptions import ConflictError, InvalidInputError, NotFoundError, AccessDeniedError
from .logging_config import get_logger, log_action


ORGANIZATION_FIELD = "organization_id"


class OrganizationScopedStorage(StorageInterface):
    """
    Storage wrapper bound to one organization

    Records written through it are stamped with the organization id. Records
    owned by another organization are indistinguishable from missing ones:
    ``load`` returns None, ``exists`` is False and ``increment`` raises
    KeyError exactly as it would for an unknown id.
    """

    def __init__(self, inner_storage: StorageInterface, organization_id: str):
        if not organization_id:
            raise ValueError("organization_id is required for scoped storage")
        self.inner = inner_storage
        self.organization_id = organization_id

    def _owns(self, data: Optional[Dict[str, Any]]) -> bool:
        return data is not None and data.get(ORGANIZATION_FIELD) == self.organization_id

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record stamped with this organization"""
        existing = self.inner.load(table, record_id)
        if existing is not None and not self._owns(existing):
            raise PermissionError(f"Record {record_id} belongs to another organization")
        scoped = dict(data)
        scoped[ORGANIZATION_FIELD] = self.organization_id
        self.inner.save(table, record_id, scoped)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record if this organization owns it"""
        result = self.inner.load(table, record_id)
        return result if self._owns(result) else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records owned by this organization"""
        return self.inner.find(table, {ORGANIZATION_FIELD: self.organization_id})

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record owned by this organization"""
        if not self._owns(self.inner.load(table, record_id)):
            return False
        return self.inner.delete(table, record_id)

    def exists(self, table: str, record_id: str) -> bool:
        """Check if record exists within this organization"""
        return self._owns(self.inner.load(table, record_id))

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records with the organization filter added"""
        scoped = dict(filters)
        scoped[ORGANIZATION_FIELD] = self.organization_id
        return self.inner.find(table, scoped)

    def count(self, table: str) -> int:
        """Count records owned by this organization"""
        return len(self.load_all(table))

    def increment(self, table: str, record_id: str, field: str, delta: Decimal) -> Decimal:
        """Apply an atomic delta to a record owned by this organization"""
        with self.inner.atomic():
            if not self._owns(self.inner.load(table, record_id)):
                raise KeyError(f"{table}/{record_id}")
            return self.inner.increment(table, record_id, field, delta)

    def clear_table(self, table: str) -> None:
        """Clear table - not allowed through an organization scope"""
        raise PermissionError("Cannot clear table from an organization scope")

    def close(self) -> None:
        """Scopes share the underlying storage; closing is the owner's job"""
        pass

    def begin_transaction(self) -> None:
        """Begin transaction on underlying storage"""
        self.inner.begin_transaction()

    def commit(self) -> None:
        """Commit transaction on underlying storage"""
        self.inner.commit()

    def rollback(self) -> None:
        """Rollback transaction on underlying storage"""
        self.inner.rollback()


class MemberRole(Enum):
    """Role of a user within an organization"""
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


@dataclass
class Organization(StorageRecord):
    """Tenant owning accounts and transactions"""
    name: str


@dataclass
class Membership(StorageRecord):
    """A user's role within one organization"""
    organization_id: str
    user_id: str
    role: MemberRole

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['role'] = self.role.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Membership':
        data = dict(data)
        data['role'] = MemberRole(data['role'])
        return super().from_dict(data)


class OrganizationDirectory:
    """Organization registry and membership checks"""

    ORGANIZATIONS_TABLE = "organizations"
    MEMBERSHIPS_TABLE = "organization_members"

    def __init__(self, storage: StorageInterface):
        # Raw storage: the registry itself spans all organizations
        self.storage = storage
        self.logger = get_logger("org_ledger.tenancy")

    def create_organization(self, name: str, creator_user_id: str) -> Organization:
        """Create an organization; the creator becomes its admin"""
        if not name or not name.strip():
            raise InvalidInputError("Organization name is required", code="ORGANIZATION_NAME_REQUIRED")

        now = datetime.now(timezone.utc)
        organization = Organization(id=str(uuid.uuid4()), created_at=now, updated_at=now, name=name.strip())

        with self.storage.atomic():
            self.storage.save(self.ORGANIZATIONS_TABLE, organization.id, organization.to_dict())
            self._save_membership(organization.id, creator_user_id, MemberRole.ADMIN)

        log_action(
            self.logger, "info", "Organization created",
            user_id=creator_user_id, action="create_organization",
            resource=f"organization:{organization.id}"
        )
        return organization

    def get_organization(self, organization_id: str) -> Organization:
        data = self.storage.load(self.ORGANIZATIONS_TABLE, organization_id)
        if not data:
            raise NotFoundError("Organization not found")
        return Organization.from_dict(data)

    def rename_organization(self, organization_id: str, name: str, requesting_user_id: str) -> Organization:
        """Change an organization's name (admins only)"""
        organization = self.get_organization(organization_id)
        if self.get_user_role(organization_id, requesting_user_id) != MemberRole.ADMIN:
            raise AccessDeniedError("Only admins can update the organization")
        if not name or not name.strip():
            raise InvalidInputError("Organization name is required", code="ORGANIZATION_NAME_REQUIRED")

        organization = replace(organization, name=name.strip(), updated_at=datetime.now(timezone.utc))
        self.storage.save(self.ORGANIZATIONS_TABLE, organization.id, organization.to_dict())

        log_action(
            self.logger, "info", "Organization renamed",
            user_id=requesting_user_id, action="update_organization",
            resource=f"organization:{organization.id}"
        )
        return organization

    def add_member(
        self,
        organization_id: str,
        user_id: str,
        role: str = MemberRole.MEMBER.value,
        requesting_user_id: Optional[str] = None
    ) -> Membership:
        """
        Add a user to an organization

        Args:
            organization_id: Target organization
            user_id: User to add
            role: One of admin, member, viewer
            requesting_user_id: When given, must be an admin of the organization

        Raises:
            NotFoundError: Unknown organization
            AccessDeniedError: Requesting user is not an admin
            InvalidInputError: Unknown role
            ConflictError: User is already a member
        """
        self.get_organization(organization_id)

        if requesting_user_id is not None and self.get_user_role(organization_id, requesting_user_id) != MemberRole.ADMIN:
            raise AccessDeniedError("Only admins can invite members")

        try:
            member_role = MemberRole(role)
        except ValueError:
            valid = ", ".join(r.value for r in MemberRole)
            raise InvalidInputError(f"Invalid role. Must be one of: {valid}", code="INVALID_ROLE")

        if self._find_membership(organization_id, user_id):
            raise ConflictError("User is already a member of this organization", code="DUPLICATE_MEMBER")

        return self._save_membership(organization_id, user_id, member_role)

    def verify_user_access(self, organization_id: str, user_id: str) -> bool:
        """Yes/no: may this user act within the organization"""
        return self._find_membership(organization_id, user_id) is not None

    def get_user_role(self, organization_id: str, user_id: str) -> Optional[MemberRole]:
        membership = self._find_membership(organization_id, user_id)
        return membership.role if membership else None

    def count_members(self, organization_id: str) -> int:
        return len(self.storage.find(self.MEMBERSHIPS_TABLE, {"organization_id": organization_id}))

    def list_organizations_for_user(self, user_id: str) -> List[Organization]:
        memberships = self.storage.find(self.MEMBERSHIPS_TABLE, {"user_id": user_id})
        return [self.get_organization(m["organization_id"]) for m in memberships]

    def _find_membership(self, organization_id: str, user_id: str) -> Optional[Membership]:
        found = self.storage.find(
            self.MEMBERSHIPS_TABLE,
            {"organization_id": organization_id, "user_id": user_id}
        )
        return Membership.from_dict(found[0]) if found else None

    def _save_membership(self, organization_id: str, user_id: str, role: MemberRole) -> Membership:
        now = datetime.now(timezone.utc)
        membership = Membership(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            organization_id=organization_id,
            user_id=user_id,
            role=role
        )
        self.storage.save(self.MEMBERSHIPS_TABLE, membership.id, membership.to_dict())
        return membership
