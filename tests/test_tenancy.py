"""
Tests for Organization Tenancy Module

Covers organization-scoped storage isolation and the organization directory
(creation, membership and access checks).
"""

import pytest
from decimal import Decimal

from org_ledger.storage import InMemoryStorage
from org_ledger.tenancy import (
    OrganizationScopedStorage, OrganizationDirectory, MemberRole, Membership
)
from org_ledger.exceptions import (
    AccessDeniedError, ConflictError, InvalidInputError, NotFoundError
)


class TestOrganizationScopedStorage:
    """Records owned by another organization behave like missing records"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.org_a = OrganizationScopedStorage(self.storage, "org-a")
        self.org_b = OrganizationScopedStorage(self.storage, "org-b")
        self.org_a.save("accounts", "acc-1", {"id": "acc-1", "name": "Cash", "balance": "10"})

    def test_requires_organization(self):
        with pytest.raises(ValueError):
            OrganizationScopedStorage(self.storage, "")

    def test_save_stamps_organization(self):
        assert self.storage.load("accounts", "acc-1")["organization_id"] == "org-a"

    def test_load_and_exists_hide_foreign_records(self):
        assert self.org_a.load("accounts", "acc-1")["name"] == "Cash"
        assert self.org_b.load("accounts", "acc-1") is None
        assert self.org_a.exists("accounts", "acc-1")
        assert not self.org_b.exists("accounts", "acc-1")

    def test_find_and_count_are_scoped(self):
        self.org_b.save("accounts", "acc-2", {"id": "acc-2", "name": "Cash", "balance": "0"})

        assert [r["id"] for r in self.org_a.find("accounts", {"name": "Cash"})] == ["acc-1"]
        assert [r["id"] for r in self.org_b.load_all("accounts")] == ["acc-2"]
        assert self.org_a.count("accounts") == 1
        assert self.storage.count("accounts") == 2

    def test_foreign_delete_is_a_miss(self):
        assert not self.org_b.delete("accounts", "acc-1")
        assert self.storage.exists("accounts", "acc-1")
        assert self.org_a.delete("accounts", "acc-1")

    def test_foreign_save_is_refused(self):
        with pytest.raises(PermissionError):
            self.org_b.save("accounts", "acc-1", {"id": "acc-1", "name": "Hijack"})
        assert self.storage.load("accounts", "acc-1")["name"] == "Cash"

    def test_foreign_increment_matches_unknown_id(self):
        with pytest.raises(KeyError):
            self.org_b.increment("accounts", "acc-1", "balance", Decimal("5"))
        with pytest.raises(KeyError):
            self.org_a.increment("accounts", "unknown", "balance", Decimal("5"))

        assert self.storage.load("accounts", "acc-1")["balance"] == "10"

    def test_owned_increment(self):
        assert self.org_a.increment("accounts", "acc-1", "balance", Decimal("-2.5")) == Decimal("7.5")

    def test_clear_table_not_allowed(self):
        with pytest.raises(PermissionError):
            self.org_a.clear_table("accounts")

    def test_atomic_delegates_to_inner_storage(self):
        with pytest.raises(RuntimeError):
            with self.org_a.atomic():
                self.org_a.increment("accounts", "acc-1", "balance", Decimal("100"))
                raise RuntimeError("abort")

        assert self.storage.load("accounts", "acc-1")["balance"] == "10"


class TestOrganizationDirectory:
    """Organizations and memberships"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.directory = OrganizationDirectory(self.storage)
        self.org = self.directory.create_organization("Acme", "alice")

    def test_creator_becomes_admin(self):
        assert self.directory.get_user_role(self.org.id, "alice") == MemberRole.ADMIN
        assert self.directory.verify_user_access(self.org.id, "alice")
        assert self.directory.count_members(self.org.id) == 1

    def test_create_requires_name(self):
        with pytest.raises(InvalidInputError):
            self.directory.create_organization("   ", "alice")

    def test_get_unknown_organization(self):
        with pytest.raises(NotFoundError):
            self.directory.get_organization("nope")

    def test_admin_adds_member(self):
        membership = self.directory.add_member(self.org.id, "bob", "viewer", requesting_user_id="alice")

        assert isinstance(membership, Membership)
        assert membership.role == MemberRole.VIEWER
        assert self.directory.verify_user_access(self.org.id, "bob")
        assert self.directory.count_members(self.org.id) == 2

    def test_non_admin_cannot_add_member(self):
        self.directory.add_member(self.org.id, "bob", "member")

        with pytest.raises(AccessDeniedError):
            self.directory.add_member(self.org.id, "carol", requesting_user_id="bob")
        assert not self.directory.verify_user_access(self.org.id, "carol")

    def test_invalid_role(self):
        with pytest.raises(InvalidInputError) as exc_info:
            self.directory.add_member(self.org.id, "bob", "owner")
        assert exc_info.value.code == "INVALID_ROLE"

    def test_duplicate_member(self):
        with pytest.raises(ConflictError):
            self.directory.add_member(self.org.id, "alice", "member")

    def test_outsider_has_no_access(self):
        assert not self.directory.verify_user_access(self.org.id, "mallory")
        assert self.directory.get_user_role(self.org.id, "mallory") is None

    def test_list_organizations_for_user(self):
        other = self.directory.create_organization("Globex", "alice")
        self.directory.create_organization("Initech", "bob")

        names = sorted(o.name for o in self.directory.list_organizations_for_user("alice"))
        assert names == ["Acme", "Globex"]
        assert other.id in [o.id for o in self.directory.list_organizations_for_user("alice")]

    def test_admin_renames_organization(self):
        renamed = self.directory.rename_organization(self.org.id, "  Acme Ltd ", requesting_user_id="alice")

        assert renamed.name == "Acme Ltd"
        assert self.directory.get_organization(self.org.id).name == "Acme Ltd"

    def test_member_cannot_rename_organization(self):
        self.directory.add_member(self.org.id, "bob", "member")

        with pytest.raises(AccessDeniedError):
            self.directory.rename_organization(self.org.id, "Bob Corp", requesting_user_id="bob")
        assert self.directory.get_organization(self.org.id).name == "Acme"

    def test_rename_requires_name(self):
        with pytest.raises(InvalidInputError):
            self.directory.rename_organization(self.org.id, "", requesting_user_id="alice")
