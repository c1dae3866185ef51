"""Task Access Engine - task CRUD with role-based scoping."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import and_, case, false, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.models import Organization, Task, TaskPriority, TaskStatus
from taskscope.schemas import CreateTaskRequest, TaskQuery, TaskResponse, UpdateTaskRequest
from taskscope.services.memberships import MembershipService
from taskscope.shared.auth import IdentityContext
from taskscope.shared.auth.rbac import (
    ORG_PERMISSIONS, OrgPermission, OrgRole, can_patch_task_fields, can_read_task,
    check_org_permission,
)
from taskscope.shared.errors import ForbiddenError, InvalidInputError, NotFoundError
from taskscope.shared.models import PaginatedResponse

logger = logging.getLogger(__name__)

# Severity rank used when sorting by priority
PRIORITY_RANK = {
    TaskPriority.LOW.value: 1,
    TaskPriority.MEDIUM.value: 2,
    TaskPriority.HIGH.value: 3,
    TaskPriority.URGENT.value: 4,
}


def _sort_column(sort: str) -> Any:
    if sort == "dueDate":
        return Task.due_date
    if sort == "priority":
        return case(PRIORITY_RANK, value=Task.priority, else_=0)
    return Task.created_at


class TaskService:
    """Task business logic. Every read and write goes through the same visibility gate."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.memberships = MembershipService(db)

    async def create(self, data: CreateTaskRequest, identity: IdentityContext) -> TaskResponse:
        if data.organization_id is None:
            raise InvalidInputError("organizationId is required")
        org_id = data.organization_id

        actor_role = await self.memberships.role_of(org_id, identity.id)
        check_org_permission(
            identity, actor_role, OrgPermission.CREATE_TASK,
            detail="Only owners and admins can create tasks",
        )
        if await self.db.get(Organization, org_id) is None:
            raise NotFoundError("Organization not found")
        if data.assigned_to_id is not None:
            await self._check_assignee(org_id, data.assigned_to_id)

        task = Task(
            organization_id=org_id,
            title=data.title,
            description=data.description,
            status=data.status.value,
            priority=data.priority.value,
            due_date=data.due_date,
            created_by_id=identity.id,
            assigned_to_id=data.assigned_to_id,
        )
        self.db.add(task)
        await self.db.flush()
        logger.info("Task %s created in org %s by %s", task.id, org_id, identity.id)
        return TaskResponse.model_validate(task)

    async def find_all(
        self, identity: IdentityContext, query: TaskQuery
    ) -> PaginatedResponse[TaskResponse]:
        conditions = [await self._visibility(identity)]

        if query.status is not None:
            conditions.append(Task.status == query.status.value)
        if query.priority is not None:
            conditions.append(Task.priority == query.priority.value)
        if query.assigned_to_id is not None:
            conditions.append(Task.assigned_to_id == query.assigned_to_id)
        if query.organization_id is not None:
            conditions.append(Task.organization_id == query.organization_id)
        if query.search:
            # Plain substring: % and _ in the search text match literally
            conditions.append(or_(
                Task.title.icontains(query.search, autoescape=True),
                Task.description.icontains(query.search, autoescape=True),
            ))

        where = and_(*conditions)
        total = (await self.db.execute(
            select(func.count()).select_from(Task).where(where)
        )).scalar_one()

        column = _sort_column(query.sort)
        ordering = column.asc() if query.order == "ASC" else column.desc()
        result = await self.db.execute(
            select(Task)
            .where(where)
            .order_by(ordering, Task.id)
            .offset(query.offset)
            .limit(query.limit)
        )
        return PaginatedResponse[TaskResponse](
            data=[TaskResponse.model_validate(t) for t in result.scalars().all()],
            total=total,
            page=query.page,
            page_size=query.limit,
        )

    async def find_one(self, task_id: uuid.UUID, identity: IdentityContext) -> TaskResponse:
        task, _ = await self._get_readable(task_id, identity)
        return TaskResponse.model_validate(task)

    async def update(
        self, task_id: uuid.UUID, data: UpdateTaskRequest, identity: IdentityContext
    ) -> TaskResponse:
        task, role = await self._get_readable(task_id, identity)

        changes = data.model_dump(exclude_unset=True)
        if not can_patch_task_fields(identity, role, changes.keys()):
            raise ForbiddenError("Viewers can only update status")
        if changes.get("assigned_to_id") is not None:
            await self._check_assignee(task.organization_id, changes["assigned_to_id"])

        for field, value in changes.items():
            if isinstance(value, (TaskStatus, TaskPriority)):
                value = value.value
            setattr(task, field, value)
        await self.db.flush()
        return TaskResponse.model_validate(task)

    async def update_status(
        self, task_id: uuid.UUID, status: TaskStatus, identity: IdentityContext
    ) -> TaskResponse:
        task, role = await self._get_readable(task_id, identity)
        if not can_patch_task_fields(identity, role, ("status",)):
            raise ForbiddenError("Not allowed to change the status of this task")

        task.status = TaskStatus(status).value
        await self.db.flush()
        return TaskResponse.model_validate(task)

    async def remove(self, task_id: uuid.UUID, identity: IdentityContext) -> None:
        task, role = await self._get_readable(task_id, identity)
        check_org_permission(
            identity, role, OrgPermission.DELETE_TASK,
            detail="Viewers cannot delete tasks",
        )
        await self.db.delete(task)
        await self.db.flush()

    # ---- Helpers ----

    async def _get_readable(
        self, task_id: uuid.UUID, identity: IdentityContext
    ) -> tuple[Task, Optional[OrgRole]]:
        """Load a task and apply the read gate; returns the caller's role in its org."""
        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")

        role = await self.memberships.role_of(task.organization_id, identity.id)
        if identity.is_super_admin:
            return task, role
        if role is None:
            raise ForbiddenError("You are not a member of this organization")
        if not can_read_task(identity, role, task.assigned_to_id):
            raise ForbiddenError("You can only access tasks assigned to you")
        return task, role

    async def _visibility(self, identity: IdentityContext) -> Any:
        """SQL predicate selecting exactly the tasks the identity may read."""
        if identity.is_super_admin:
            return true()

        memberships = await self.memberships.memberships_for(identity.id)
        if not memberships:
            return Task.assigned_to_id == identity.id

        full_orgs = [
            org_id for org_id, role in memberships
            if OrgPermission.VIEW_ALL_TASKS in ORG_PERMISSIONS[role]
        ]
        assigned_orgs = [org_id for org_id, _ in memberships if org_id not in full_orgs]

        clauses = []
        if full_orgs:
            clauses.append(Task.organization_id.in_(full_orgs))
        if assigned_orgs:
            clauses.append(and_(
                Task.organization_id.in_(assigned_orgs),
                Task.assigned_to_id == identity.id,
            ))
        return or_(false(), *clauses)

    async def _check_assignee(self, org_id: uuid.UUID, user_id: uuid.UUID) -> None:
        if await self.memberships.role_of(org_id, user_id) is None:
            raise InvalidInputError("Assignee must be a member of the task's organization")
