"""Tests for the centralized role predicates."""

import uuid

import pytest

from taskscope.shared.auth import IdentityContext
from taskscope.shared.auth.rbac import (
    GlobalRole, OrgPermission, OrgRole, can_grant_role, can_patch_task_fields,
    can_read_audit_log, can_read_task, can_remove_member, check_org_permission,
    has_org_permission, has_unrestricted_audit_scope, parse_global_role, parse_org_role,
)
from taskscope.shared.errors import ForbiddenError, InvalidInputError


def _identity(global_role: GlobalRole = GlobalRole.VIEWER) -> IdentityContext:
    return IdentityContext(id=uuid.uuid4(), email="someone@example.com", global_role=global_role)


class TestRoleParsing:
    """Role strings are validated at the boundary."""

    def test_parses_known_org_roles(self):
        assert parse_org_role("owner") is OrgRole.OWNER
        assert parse_org_role("viewer") is OrgRole.VIEWER

    def test_unknown_org_role_is_invalid_input(self):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_org_role("superuser")
        assert "superuser" in exc_info.value.detail

    def test_org_role_is_not_a_global_role(self):
        """'owner' only exists inside an organization."""
        with pytest.raises(InvalidInputError):
            parse_global_role("owner")

    def test_parses_global_role(self):
        assert parse_global_role("super_admin") is GlobalRole.SUPER_ADMIN


class TestOrgPermissions:
    def test_super_admin_bypasses_membership(self):
        identity = _identity(GlobalRole.SUPER_ADMIN)
        for permission in OrgPermission:
            assert has_org_permission(identity, None, permission)

    def test_non_member_has_nothing(self):
        assert not has_org_permission(_identity(), None, OrgPermission.VIEW_MEMBERS)

    def test_viewer_permissions(self):
        identity = _identity()
        assert has_org_permission(identity, OrgRole.VIEWER, OrgPermission.VIEW_MEMBERS)
        assert has_org_permission(identity, OrgRole.VIEWER, OrgPermission.CHANGE_TASK_STATUS)
        assert not has_org_permission(identity, OrgRole.VIEWER, OrgPermission.CREATE_TASK)
        assert not has_org_permission(identity, OrgRole.VIEWER, OrgPermission.VIEW_AUDIT_LOG)

    def test_admin_cannot_manage_org_itself(self):
        identity = _identity()
        assert has_org_permission(identity, OrgRole.ADMIN, OrgPermission.CREATE_TASK)
        assert not has_org_permission(identity, OrgRole.ADMIN, OrgPermission.EDIT_ORG)
        assert not has_org_permission(identity, OrgRole.ADMIN, OrgPermission.DELETE_ORG)
        assert not has_org_permission(identity, OrgRole.ADMIN, OrgPermission.CHANGE_ROLES)

    def test_owner_has_everything(self):
        identity = _identity()
        assert all(has_org_permission(identity, OrgRole.OWNER, p) for p in OrgPermission)

    def test_check_reports_non_membership(self):
        with pytest.raises(ForbiddenError) as exc_info:
            check_org_permission(_identity(), None, OrgPermission.VIEW_MEMBERS)
        assert exc_info.value.detail == "You are not a member of this organization"

    def test_check_uses_custom_detail(self):
        with pytest.raises(ForbiddenError) as exc_info:
            check_org_permission(_identity(), OrgRole.VIEWER, OrgPermission.DELETE_TASK, detail="nope")
        assert exc_info.value.detail == "nope"


class TestMembershipRules:
    def test_admin_cannot_grant_owner(self):
        identity = _identity()
        assert can_grant_role(identity, OrgRole.ADMIN, OrgRole.ADMIN)
        assert can_grant_role(identity, OrgRole.ADMIN, OrgRole.VIEWER)
        assert not can_grant_role(identity, OrgRole.ADMIN, OrgRole.OWNER)

    def test_owner_grants_anything(self):
        assert can_grant_role(_identity(), OrgRole.OWNER, OrgRole.OWNER)

    def test_viewer_grants_nothing(self):
        assert not can_grant_role(_identity(), OrgRole.VIEWER, OrgRole.VIEWER)

    def test_admin_removes_only_viewers(self):
        identity = _identity()
        assert can_remove_member(identity, OrgRole.ADMIN, OrgRole.VIEWER)
        assert not can_remove_member(identity, OrgRole.ADMIN, OrgRole.ADMIN)
        assert not can_remove_member(identity, OrgRole.ADMIN, OrgRole.OWNER)

    def test_super_admin_removes_anyone(self):
        assert can_remove_member(_identity(GlobalRole.SUPER_ADMIN), None, OrgRole.OWNER)


class TestTaskRules:
    def test_viewer_reads_only_assigned(self):
        identity = _identity()
        assert can_read_task(identity, OrgRole.VIEWER, identity.id)
        assert not can_read_task(identity, OrgRole.VIEWER, uuid.uuid4())
        assert not can_read_task(identity, OrgRole.VIEWER, None)

    def test_non_member_cannot_read_even_if_assigned(self):
        identity = _identity()
        assert not can_read_task(identity, None, identity.id)

    def test_viewer_may_only_patch_status(self):
        identity = _identity()
        assert can_patch_task_fields(identity, OrgRole.VIEWER, {"status"})
        assert can_patch_task_fields(identity, OrgRole.VIEWER, set())
        assert not can_patch_task_fields(identity, OrgRole.VIEWER, {"status", "title"})
        assert not can_patch_task_fields(identity, OrgRole.VIEWER, {"priority"})

    def test_admin_patches_any_field(self):
        assert can_patch_task_fields(_identity(), OrgRole.ADMIN, {"title", "priority", "status"})


class TestAuditRules:
    def test_viewer_only_identity_is_closed_out(self):
        assert not can_read_audit_log(_identity(), [OrgRole.VIEWER, OrgRole.VIEWER])
        assert not can_read_audit_log(_identity(), [])

    def test_admin_reads_with_restricted_scope(self):
        identity = _identity()
        assert can_read_audit_log(identity, [OrgRole.ADMIN])
        assert not has_unrestricted_audit_scope(identity, [OrgRole.ADMIN, OrgRole.VIEWER])

    def test_owner_anywhere_is_unrestricted(self):
        assert has_unrestricted_audit_scope(_identity(), [OrgRole.ADMIN, OrgRole.OWNER])

    def test_super_admin_is_unrestricted(self):
        assert has_unrestricted_audit_scope(_identity(GlobalRole.SUPER_ADMIN), [])
