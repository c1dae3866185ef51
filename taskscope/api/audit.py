"""Audit log routes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from taskscope.dependencies import get_audit_service, get_current_identity
from taskscope.models import AuditAction, ResourceType
from taskscope.schemas import AuditLogResponse, AuditQuery
from taskscope.services import AuditService
from taskscope.shared.auth import IdentityContext
from taskscope.shared.models import DEFAULT_PAGE_SIZE, PaginatedResponse

router = APIRouter(prefix="/audit-log", tags=["Audit"])


@router.get("", response_model=PaginatedResponse[AuditLogResponse])
async def list_audit_log(
    action: Optional[AuditAction] = Query(default=None),
    resource_type: Optional[ResourceType] = Query(default=None, alias="resourceType"),
    user_id: Optional[uuid.UUID] = Query(default=None, alias="userId"),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, alias="pageSize"),
    identity: IdentityContext = Depends(get_current_identity),
    audit_service: AuditService = Depends(get_audit_service),
) -> PaginatedResponse[AuditLogResponse]:
    """Audit entries visible to the caller, newest first. Owners and admins only."""
    query = AuditQuery(
        action=action,
        resource_type=resource_type,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return await audit_service.query(identity, query)
