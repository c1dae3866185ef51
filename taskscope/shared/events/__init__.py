"""Event type definitions.

Every event is a flat dict carrying at least `event_type`, `actor_id`,
`resource_id` and optionally `details` / `ip_address`.
"""

from __future__ import annotations

# Event type constants
USER_LOGIN = "user.login"
USER_ROLE_CHANGED = "user.role_changed"

ORG_CREATED = "organization.created"
ORG_UPDATED = "organization.updated"
ORG_DELETED = "organization.deleted"
ORG_MEMBER_ADDED = "organization.member_added"
ORG_MEMBER_REMOVED = "organization.member_removed"
ORG_MEMBER_ROLE_CHANGED = "organization.member_role_changed"

TASK_CREATED = "task.created"
TASK_UPDATED = "task.updated"
TASK_DELETED = "task.deleted"

# event_type -> (audit action, audit resource type)
AUDITED_EVENTS: dict[str, tuple[str, str]] = {
    USER_LOGIN: ("login", "user"),
    USER_ROLE_CHANGED: ("update", "user"),
    ORG_CREATED: ("create", "organization"),
    ORG_UPDATED: ("update", "organization"),
    ORG_DELETED: ("delete", "organization"),
    ORG_MEMBER_ADDED: ("update", "organization"),
    ORG_MEMBER_REMOVED: ("update", "organization"),
    ORG_MEMBER_ROLE_CHANGED: ("update", "organization"),
    TASK_CREATED: ("create", "task"),
    TASK_UPDATED: ("update", "task"),
    TASK_DELETED: ("delete", "task"),
}
