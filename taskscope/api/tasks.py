"""Task routes."""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from taskscope.dependencies import get_current_identity, get_task_service
from taskscope.models import TaskPriority, TaskStatus
from taskscope.schemas import (
    CreateTaskRequest, TaskQuery, TaskResponse, UpdateTaskRequest, UpdateTaskStatusRequest,
)
from taskscope.services import TaskService
from taskscope.shared.auth import IdentityContext
from taskscope.shared.models import DEFAULT_PAGE_SIZE, PaginatedResponse

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    data: CreateTaskRequest,
    identity: IdentityContext = Depends(get_current_identity),
    task_service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await task_service.create(data, identity)


@router.get("", response_model=PaginatedResponse[TaskResponse])
async def list_tasks(
    status: Optional[TaskStatus] = Query(default=None),
    priority: Optional[TaskPriority] = Query(default=None),
    assigned_to_id: Optional[uuid.UUID] = Query(default=None, alias="assignedToId"),
    organization_id: Optional[uuid.UUID] = Query(default=None, alias="organizationId"),
    search: Optional[str] = Query(default=None),
    sort: Literal["dueDate", "priority", "createdAt"] = Query(default="createdAt"),
    order: Literal["ASC", "DESC", "asc", "desc"] = Query(default="DESC"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, alias="pageSize"),
    identity: IdentityContext = Depends(get_current_identity),
    task_service: TaskService = Depends(get_task_service),
) -> PaginatedResponse[TaskResponse]:
    """Tasks visible to the caller. Page size is capped at 100."""
    query = TaskQuery(
        status=status,
        priority=priority,
        assigned_to_id=assigned_to_id,
        organization_id=organization_id,
        search=search,
        sort=sort,
        order=order,
        page=page,
        page_size=page_size,
    )
    return await task_service.find_all(identity, query)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: uuid.UUID,
    identity: IdentityContext = Depends(get_current_identity),
    task_service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await task_service.find_one(task_id, identity)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: uuid.UUID,
    data: UpdateTaskRequest,
    identity: IdentityContext = Depends(get_current_identity),
    task_service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    """Partial update. Viewers may only send status."""
    return await task_service.update(task_id, data, identity)


@router.patch("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: uuid.UUID,
    data: UpdateTaskStatusRequest,
    identity: IdentityContext = Depends(get_current_identity),
    task_service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await task_service.update_status(task_id, data.status, identity)


@router.delete("/{task_id}", status_code=204)
async def delete_task(
    task_id: uuid.UUID,
    identity: IdentityContext = Depends(get_current_identity),
    task_service: TaskService = Depends(get_task_service),
) -> None:
    await task_service.remove(task_id, identity)
