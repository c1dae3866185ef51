"""Organization Lifecycle Manager - Business Logic."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.models import Membership, Organization, Task
from taskscope.schemas import CreateOrgRequest, OrgDetailResponse, OrgResponse, UpdateOrgRequest
from taskscope.services.memberships import MembershipService
from taskscope.shared.auth import IdentityContext
from taskscope.shared.auth.rbac import OrgPermission, check_org_permission, has_org_permission
from taskscope.shared.errors import NotFoundError
from taskscope.shared.events import ORG_CREATED, ORG_DELETED, ORG_UPDATED
from taskscope.shared.events.dispatcher import publish_on_commit

logger = logging.getLogger(__name__)


class OrganizationService:
    """Organization business logic."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.memberships = MembershipService(db)

    async def create(self, data: CreateOrgRequest, identity: IdentityContext) -> OrgResponse:
        """Create an organization; the caller becomes its first owner in the same unit of work."""
        org = Organization(name=data.name)
        self.db.add(org)
        await self.db.flush()

        await self.memberships.add_owner(org.id, identity.id)

        publish_on_commit(self.db, {
            "event_type": ORG_CREATED,
            "actor_id": str(identity.id),
            "resource_id": str(org.id),
            "details": {"name": org.name},
        })
        logger.info("Organization %s created by %s", org.id, identity.id)
        return OrgResponse.model_validate(org)

    async def find_all(self, identity: IdentityContext) -> list[OrgResponse]:
        stmt = select(Organization).order_by(Organization.created_at)
        if not identity.is_super_admin:
            stmt = stmt.join(Membership, Membership.organization_id == Organization.id).where(
                Membership.user_id == identity.id
            )
        result = await self.db.execute(stmt)
        return [OrgResponse.model_validate(o) for o in result.scalars().all()]

    async def find_one(self, org_id: uuid.UUID, identity: IdentityContext) -> OrgDetailResponse:
        org = await self._get_org(org_id)
        detail = OrgDetailResponse.model_validate(org)

        actor_role = await self.memberships.role_of(org_id, identity.id)
        if has_org_permission(identity, actor_role, OrgPermission.VIEW_MEMBERS):
            detail.users = await self.memberships.members(org_id)
        return detail

    async def update(
        self, org_id: uuid.UUID, data: UpdateOrgRequest, identity: IdentityContext
    ) -> OrgResponse:
        actor_role = await self.memberships.role_of(org_id, identity.id)
        check_org_permission(
            identity, actor_role, OrgPermission.EDIT_ORG,
            detail="Only organization owners can update organizations",
        )
        org = await self._get_org(org_id)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            setattr(org, field, value)
        await self.db.flush()

        publish_on_commit(self.db, {
            "event_type": ORG_UPDATED,
            "actor_id": str(identity.id),
            "resource_id": str(org.id),
            "details": changes,
        })
        return OrgResponse.model_validate(org)

    async def remove(self, org_id: uuid.UUID, identity: IdentityContext) -> None:
        actor_role = await self.memberships.role_of(org_id, identity.id)
        check_org_permission(
            identity, actor_role, OrgPermission.DELETE_ORG,
            detail="Only organization owners can delete organizations",
        )
        org = await self._get_org(org_id)

        await self.memberships.remove_all(org_id)
        await self.db.execute(delete(Task).where(Task.organization_id == org_id))
        await self.db.delete(org)
        await self.db.flush()

        publish_on_commit(self.db, {
            "event_type": ORG_DELETED,
            "actor_id": str(identity.id),
            "resource_id": str(org_id),
            "details": {"name": org.name},
        })
        logger.info("Organization %s deleted by %s", org_id, identity.id)

    async def _get_org(self, org_id: uuid.UUID) -> Organization:
        org = await self.db.get(Organization, org_id)
        if org is None:
            raise NotFoundError(f"Organization {org_id} not found")
        return org
