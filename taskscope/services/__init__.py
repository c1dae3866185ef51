"""Core services: membership, organization, task, audit, user and auth logic."""

from taskscope.services.audit import AuditService, handle_audit_event, register_audit_handlers, sanitize_details
from taskscope.services.auth import AuthService
from taskscope.services.identity import IdentityResolver
from taskscope.services.memberships import MembershipService
from taskscope.services.organizations import OrganizationService
from taskscope.services.tasks import TaskService
from taskscope.services.users import UserService, pwd_context

__all__ = [
    "AuditService",
    "AuthService",
    "IdentityResolver",
    "MembershipService",
    "OrganizationService",
    "TaskService",
    "UserService",
    "handle_audit_event",
    "pwd_context",
    "register_audit_handlers",
    "sanitize_details",
]
