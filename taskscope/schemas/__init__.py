"""Pydantic Schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import ConfigDict, EmailStr, Field, field_validator, model_validator

from taskscope.models import AuditAction, ResourceType, TaskPriority, TaskStatus
from taskscope.shared.models import BaseSchema, PaginationParams


# =============================================================================
# Auth & User Schemas
# =============================================================================

class RegisterRequest(BaseSchema):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseSchema):
    email: EmailStr
    password: str


class UserResponse(BaseSchema):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    is_active: bool
    role: str
    created_at: datetime


class AuthResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UpdateUserRoleRequest(BaseSchema):
    role: str


class MembershipClaimResponse(BaseSchema):
    organization_id: uuid.UUID
    role: str


class IdentityResponse(BaseSchema):
    """The caller as the service currently sees them."""
    id: uuid.UUID
    email: str
    global_role: str
    memberships: list[MembershipClaimResponse]


# =============================================================================
# Organization Schemas
# =============================================================================

class CreateOrgRequest(BaseSchema):
    name: str = Field(min_length=1, max_length=255)


class UpdateOrgRequest(BaseSchema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)


class OrgResponse(BaseSchema):
    id: uuid.UUID
    name: str
    created_at: datetime
    updated_at: datetime


class OrgMemberResponse(BaseSchema):
    user_id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    joined_at: datetime


class OrgDetailResponse(OrgResponse):
    """Organization plus the member list, when the caller may see it."""
    users: list[OrgMemberResponse] = []


class AddMemberRequest(BaseSchema):
    user_id: uuid.UUID
    role: str = "viewer"


class ChangeMemberRoleRequest(BaseSchema):
    role: str


class MembershipResponse(BaseSchema):
    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: str


# =============================================================================
# Task Schemas
# =============================================================================

class CreateTaskRequest(BaseSchema):
    organization_id: Optional[uuid.UUID] = None
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[uuid.UUID] = None


class UpdateTaskRequest(BaseSchema):
    """Partial task update. organization_id is immutable and therefore unknown here."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[uuid.UUID] = None

    @model_validator(mode="after")
    def _required_fields_not_null(self) -> "UpdateTaskRequest":
        for name in ("title", "status", "priority"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class UpdateTaskStatusRequest(BaseSchema):
    status: TaskStatus


class TaskResponse(BaseSchema):
    id: uuid.UUID
    organization_id: uuid.UUID
    title: str
    description: Optional[str]
    status: str
    priority: str
    due_date: Optional[datetime]
    created_by_id: uuid.UUID
    assigned_to_id: Optional[uuid.UUID]
    created_at: datetime
    updated_at: datetime


class TaskQuery(BaseSchema, PaginationParams):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to_id: Optional[uuid.UUID] = None
    organization_id: Optional[uuid.UUID] = None
    search: Optional[str] = None
    sort: Literal["dueDate", "priority", "createdAt"] = "createdAt"
    order: Literal["ASC", "DESC"] = "DESC"

    @field_validator("order", mode="before")
    @classmethod
    def _upper_order(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


# =============================================================================
# Audit Schemas
# =============================================================================

class AuditQuery(BaseSchema, PaginationParams):
    action: Optional[AuditAction] = None
    resource_type: Optional[ResourceType] = None
    user_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AuditActorResponse(BaseSchema):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str


class AuditLogResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    action: str
    resource_type: str
    resource_id: str
    details: Optional[dict[str, Any]]
    ip_address: Optional[str]
    created_at: datetime
    user: Optional[AuditActorResponse] = None
