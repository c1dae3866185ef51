"""Audit Recorder & Query Engine - Business Logic & Event Handlers."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from taskscope.models import AuditLog, Membership
from taskscope.schemas import AuditLogResponse, AuditQuery
from taskscope.services.memberships import MembershipService
from taskscope.shared.auth import IdentityContext
from taskscope.shared.auth.rbac import (
    ORG_PERMISSIONS, OrgPermission, can_read_audit_log, has_unrestricted_audit_scope,
)
from taskscope.shared.errors import ForbiddenError
from taskscope.shared.events import AUDITED_EVENTS
from taskscope.shared.events.dispatcher import EventDispatcher
from taskscope.shared.models import PaginatedResponse

logger = logging.getLogger(__name__)

SENSITIVE_KEY = re.compile(r"password|passwd|secret|token|api[_-]?key|authorization", re.IGNORECASE)


def sanitize_details(value: Any) -> Any:
    """Drop secret-looking keys at any depth of a JSON-like structure."""
    if isinstance(value, dict):
        return {
            k: sanitize_details(v)
            for k, v in value.items()
            if not SENSITIVE_KEY.search(str(k))
        }
    if isinstance(value, list):
        return [sanitize_details(v) for v in value]
    return value


class AuditService:
    """Audit log writes and scoped reads."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.memberships = MembershipService(db)

    async def log(
        self,
        user_id: uuid.UUID,
        action: str,
        resource_type: str,
        resource_id: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=sanitize_details(details) if details is not None else None,
            ip_address=ip_address,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def query(
        self, identity: IdentityContext, query: AuditQuery
    ) -> PaginatedResponse[AuditLogResponse]:
        memberships = await self.memberships.memberships_for(identity.id)
        roles = [role for _, role in memberships]
        if not can_read_audit_log(identity, roles):
            raise ForbiddenError("Only owners and admins can view audit logs")

        conditions = []
        if not has_unrestricted_audit_scope(identity, roles):
            # Org-scoped admins see activity of members of the orgs they administer
            admin_orgs = [
                org_id for org_id, role in memberships
                if OrgPermission.VIEW_AUDIT_LOG in ORG_PERMISSIONS[role]
            ]
            members = select(Membership.user_id).where(Membership.organization_id.in_(admin_orgs))
            conditions.append(AuditLog.user_id.in_(members))

        if query.action is not None:
            conditions.append(AuditLog.action == query.action.value)
        if query.resource_type is not None:
            conditions.append(AuditLog.resource_type == query.resource_type.value)
        if query.user_id is not None:
            conditions.append(AuditLog.user_id == query.user_id)
        if query.start_date is not None:
            conditions.append(AuditLog.created_at >= query.start_date)
        if query.end_date is not None:
            conditions.append(AuditLog.created_at <= query.end_date)

        total = await self.db.scalar(
            select(func.count()).select_from(AuditLog).where(*conditions)
        )
        result = await self.db.execute(
            select(AuditLog)
            .options(selectinload(AuditLog.user))
            .where(*conditions)
            .order_by(AuditLog.created_at.desc(), AuditLog.id)
            .offset(query.offset)
            .limit(query.limit)
        )
        return PaginatedResponse[AuditLogResponse](
            data=[AuditLogResponse.model_validate(e) for e in result.scalars().all()],
            total=total or 0,
            page=query.page,
            page_size=query.limit,
        )


# ---- Event handlers ----

async def handle_audit_event(event: dict[str, Any], session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Persist one dispatched event as an audit log entry in its own session."""
    action, resource_type = AUDITED_EVENTS[event["event_type"]]
    async with session_factory() as db:
        await AuditService(db).log(
            user_id=uuid.UUID(str(event["actor_id"])),
            action=action,
            resource_type=resource_type,
            resource_id=str(event.get("resource_id") or "unknown"),
            details=event.get("details"),
            ip_address=event.get("ip_address"),
        )
        await db.commit()


def register_audit_handlers(
    dispatcher: EventDispatcher, session_factory: async_sessionmaker[AsyncSession]
) -> None:
    async def _record(event: dict[str, Any]) -> None:
        await handle_audit_event(event, session_factory)

    for event_type in AUDITED_EVENTS:
        dispatcher.on(event_type, _record)
    logger.info("Audit recorder registered for %d event types", len(AUDITED_EVENTS))
