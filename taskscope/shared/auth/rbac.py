"""RBAC rules for global and organization-level roles.

Every authorization decision in the services goes through the predicates in
this module. Callers look up the actor's *current* organization role from the
membership store and pass it in; a global super admin passes every check.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from taskscope.shared.errors import ForbiddenError, InvalidInputError

if TYPE_CHECKING:
    from taskscope.shared.auth import IdentityContext


# Role Definitions

class GlobalRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    VIEWER = "viewer"


class OrgRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    VIEWER = "viewer"


# Permission Definitions

class OrgPermission(str, Enum):
    VIEW_MEMBERS = "view_members"
    ADD_MEMBERS = "add_members"
    GRANT_OWNER = "grant_owner"
    CHANGE_ROLES = "change_roles"
    REMOVE_ANY_MEMBER = "remove_any_member"
    REMOVE_VIEWERS = "remove_viewers"
    EDIT_ORG = "edit_org"
    DELETE_ORG = "delete_org"
    CREATE_TASK = "create_task"
    VIEW_ALL_TASKS = "view_all_tasks"
    EDIT_ANY_TASK = "edit_any_task"
    DELETE_TASK = "delete_task"
    CHANGE_TASK_STATUS = "change_task_status"
    VIEW_AUDIT_LOG = "view_audit_log"
    VIEW_ALL_AUDIT_LOG = "view_all_audit_log"


# Org role -> set of permissions
ORG_PERMISSIONS: dict[OrgRole, frozenset[OrgPermission]] = {
    OrgRole.OWNER: frozenset(OrgPermission),
    OrgRole.ADMIN: frozenset({
        OrgPermission.VIEW_MEMBERS, OrgPermission.ADD_MEMBERS, OrgPermission.REMOVE_VIEWERS,
        OrgPermission.CREATE_TASK, OrgPermission.VIEW_ALL_TASKS, OrgPermission.EDIT_ANY_TASK,
        OrgPermission.DELETE_TASK, OrgPermission.CHANGE_TASK_STATUS, OrgPermission.VIEW_AUDIT_LOG,
    }),
    OrgRole.VIEWER: frozenset({
        OrgPermission.VIEW_MEMBERS, OrgPermission.CHANGE_TASK_STATUS,
    }),
}

# Fields a viewer may change on a task assigned to them
VIEWER_WRITABLE_TASK_FIELDS = frozenset({"status"})


# Boundary validation

def parse_org_role(value: object) -> OrgRole:
    """Validate an organization role string; unknown values are invalid input."""
    try:
        return OrgRole(value)
    except ValueError:
        allowed = ", ".join(r.value for r in OrgRole)
        raise InvalidInputError(f"Invalid role '{value}'. Expected one of: {allowed}")


def parse_global_role(value: object) -> GlobalRole:
    try:
        return GlobalRole(value)
    except ValueError:
        allowed = ", ".join(r.value for r in GlobalRole)
        raise InvalidInputError(f"Invalid role '{value}'. Expected one of: {allowed}")


# Predicates

def has_org_permission(
    identity: "IdentityContext",
    role: Optional[OrgRole],
    permission: OrgPermission,
) -> bool:
    """True if the identity, holding `role` in an organization, has `permission` there."""
    if identity.is_super_admin:
        return True
    if role is None:
        return False
    return permission in ORG_PERMISSIONS.get(role, frozenset())


def check_org_permission(
    identity: "IdentityContext",
    role: Optional[OrgRole],
    permission: OrgPermission,
    detail: Optional[str] = None,
) -> None:
    """Raise ForbiddenError unless has_org_permission holds."""
    if has_org_permission(identity, role, permission):
        return
    if role is None:
        raise ForbiddenError(detail or "You are not a member of this organization")
    raise ForbiddenError(
        detail or f"Permission '{permission.value}' denied for role '{role.value}'"
    )


def can_grant_role(identity: "IdentityContext", actor_role: Optional[OrgRole], role: OrgRole) -> bool:
    """Owners may hand out any role; admins every role except owner."""
    if not has_org_permission(identity, actor_role, OrgPermission.ADD_MEMBERS):
        return False
    if role == OrgRole.OWNER:
        return has_org_permission(identity, actor_role, OrgPermission.GRANT_OWNER)
    return True


def can_remove_member(
    identity: "IdentityContext",
    actor_role: Optional[OrgRole],
    target_role: OrgRole,
) -> bool:
    if has_org_permission(identity, actor_role, OrgPermission.REMOVE_ANY_MEMBER):
        return True
    return target_role == OrgRole.VIEWER and has_org_permission(
        identity, actor_role, OrgPermission.REMOVE_VIEWERS
    )


def can_read_task(
    identity: "IdentityContext",
    role: Optional[OrgRole],
    assigned_to_id: Optional[uuid.UUID],
) -> bool:
    """Members with full task visibility see everything; others only their assignments."""
    if has_org_permission(identity, role, OrgPermission.VIEW_ALL_TASKS):
        return True
    return role is not None and assigned_to_id == identity.id


def can_patch_task_fields(
    identity: "IdentityContext",
    role: Optional[OrgRole],
    fields: Iterable[str],
) -> bool:
    if has_org_permission(identity, role, OrgPermission.EDIT_ANY_TASK):
        return True
    return has_org_permission(identity, role, OrgPermission.CHANGE_TASK_STATUS) and set(
        fields
    ) <= VIEWER_WRITABLE_TASK_FIELDS


def can_read_audit_log(identity: "IdentityContext", roles: Iterable[OrgRole]) -> bool:
    """Audit data is closed to anyone who is only ever a viewer."""
    return identity.is_super_admin or any(
        OrgPermission.VIEW_AUDIT_LOG in ORG_PERMISSIONS[r] for r in roles
    )


def has_unrestricted_audit_scope(identity: "IdentityContext", roles: Iterable[OrgRole]) -> bool:
    return identity.is_super_admin or any(
        OrgPermission.VIEW_ALL_AUDIT_LOG in ORG_PERMISSIONS[r] for r in roles
    )
