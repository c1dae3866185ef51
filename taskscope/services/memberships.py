"""Membership Store - the authoritative user -> organization -> role mapping."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.models import Membership, Organization, User
from taskscope.schemas import MembershipResponse, OrgMemberResponse
from taskscope.shared.auth import IdentityContext
from taskscope.shared.auth.rbac import (
    OrgPermission, OrgRole, can_grant_role, can_remove_member,
    check_org_permission, has_org_permission, parse_org_role,
)
from taskscope.shared.errors import (
    ConflictError, ForbiddenError, InvalidInputError, NotFoundError,
)
from taskscope.shared.events import (
    ORG_MEMBER_ADDED, ORG_MEMBER_REMOVED, ORG_MEMBER_ROLE_CHANGED,
)
from taskscope.shared.events.dispatcher import publish_on_commit

logger = logging.getLogger(__name__)


class MembershipService:
    """Membership reads and mutations, with the organization's role rules applied."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ---- Lookups ----

    async def role_of(self, org_id: uuid.UUID, user_id: uuid.UUID) -> Optional[OrgRole]:
        """Current role of a user in an organization, read from storage."""
        result = await self.db.execute(
            select(Membership.role).where(
                Membership.organization_id == org_id,
                Membership.user_id == user_id,
            )
        )
        role = result.scalar_one_or_none()
        return OrgRole(role) if role is not None else None

    async def memberships_for(self, user_id: uuid.UUID) -> list[tuple[uuid.UUID, OrgRole]]:
        result = await self.db.execute(
            select(Membership.organization_id, Membership.role)
            .where(Membership.user_id == user_id)
            .order_by(Membership.created_at)
        )
        return [(org_id, OrgRole(role)) for org_id, role in result.all()]

    async def list_members(
        self, org_id: uuid.UUID, identity: IdentityContext
    ) -> list[OrgMemberResponse]:
        actor_role = await self.role_of(org_id, identity.id)
        check_org_permission(identity, actor_role, OrgPermission.VIEW_MEMBERS)
        return await self.members(org_id)

    async def members(self, org_id: uuid.UUID) -> list[OrgMemberResponse]:
        result = await self.db.execute(
            select(Membership, User)
            .join(User, User.id == Membership.user_id)
            .where(Membership.organization_id == org_id)
            .order_by(Membership.created_at)
        )
        return [
            OrgMemberResponse(
                user_id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                role=membership.role,
                is_active=user.is_active,
                joined_at=membership.created_at,
            )
            for membership, user in result.all()
        ]

    # ---- Mutations ----

    async def add_member(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        role: str,
        identity: IdentityContext,
    ) -> MembershipResponse:
        actor_role = await self.role_of(org_id, identity.id)
        check_org_permission(identity, actor_role, OrgPermission.ADD_MEMBERS)
        new_role = parse_org_role(role)
        if not can_grant_role(identity, actor_role, new_role):
            logger.info("User %s denied granting %s in org %s", identity.id, new_role.value, org_id)
            raise ForbiddenError("Admins cannot add owners")

        if await self.db.get(Organization, org_id) is None:
            raise NotFoundError("Organization not found")
        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User not found")
        if await self.role_of(org_id, user_id) is not None:
            raise ConflictError("User is already a member of this organization")

        membership = Membership(organization_id=org_id, user_id=user_id, role=new_role.value)
        self.db.add(membership)
        await self.db.flush()

        publish_on_commit(self.db, {
            "event_type": ORG_MEMBER_ADDED,
            "actor_id": str(identity.id),
            "resource_id": str(org_id),
            "details": {"user_id": str(user_id), "role": new_role.value},
        })
        return MembershipResponse(organization_id=org_id, user_id=user_id, role=new_role.value)

    async def add_owner(self, org_id: uuid.UUID, user_id: uuid.UUID) -> Membership:
        """Make a user owner of a freshly created organization; no checks apply."""
        membership = Membership(organization_id=org_id, user_id=user_id, role=OrgRole.OWNER.value)
        self.db.add(membership)
        await self.db.flush()
        return membership

    async def update_role(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        role: str,
        identity: IdentityContext,
    ) -> MembershipResponse:
        actor_role = await self.role_of(org_id, identity.id)
        if not has_org_permission(identity, actor_role, OrgPermission.CHANGE_ROLES):
            logger.info("User %s denied changing roles in org %s", identity.id, org_id)
            raise ForbiddenError("Only owners can update member roles")
        new_role = parse_org_role(role)

        membership = await self._get_membership(org_id, user_id)
        if membership is None:
            raise NotFoundError("User is not a member of this organization")

        old_role = OrgRole(membership.role)
        if old_role == OrgRole.OWNER and new_role != OrgRole.OWNER:
            if await self._owner_count(org_id) <= 1:
                raise InvalidInputError("Cannot demote the only owner")

        membership.role = new_role.value
        await self.db.flush()

        publish_on_commit(self.db, {
            "event_type": ORG_MEMBER_ROLE_CHANGED,
            "actor_id": str(identity.id),
            "resource_id": str(org_id),
            "details": {
                "user_id": str(user_id),
                "old_role": old_role.value,
                "new_role": new_role.value,
            },
        })
        return MembershipResponse(organization_id=org_id, user_id=user_id, role=new_role.value)

    async def remove_member(
        self, org_id: uuid.UUID, user_id: uuid.UUID, identity: IdentityContext
    ) -> None:
        actor_role = await self.role_of(org_id, identity.id)
        if not identity.is_super_admin and actor_role not in (OrgRole.OWNER, OrgRole.ADMIN):
            logger.info("User %s denied removing members in org %s", identity.id, org_id)
            raise ForbiddenError("Only owners and admins can remove members")

        membership = await self._get_membership(org_id, user_id)
        if membership is None:
            raise NotFoundError("User is not a member of this organization")

        target_role = OrgRole(membership.role)
        if not can_remove_member(identity, actor_role, target_role):
            logger.info("User %s denied removing %s member in org %s", identity.id, target_role.value, org_id)
            raise ForbiddenError("Admins can only remove viewer members")

        if target_role == OrgRole.OWNER and await self._owner_count(org_id) <= 1:
            raise InvalidInputError("Cannot remove the only owner. Transfer ownership first.")

        await self.db.delete(membership)
        await self.db.flush()

        publish_on_commit(self.db, {
            "event_type": ORG_MEMBER_REMOVED,
            "actor_id": str(identity.id),
            "resource_id": str(org_id),
            "details": {"user_id": str(user_id), "role": target_role.value},
        })

    async def remove_all(self, org_id: uuid.UUID) -> None:
        await self.db.execute(delete(Membership).where(Membership.organization_id == org_id))

    # ---- Helpers ----

    async def _get_membership(self, org_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Membership]:
        result = await self.db.execute(
            select(Membership).where(
                Membership.organization_id == org_id,
                Membership.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _owner_count(self, org_id: uuid.UUID) -> int:
        # Locks the owner rows so concurrent demotions serialize on the count
        result = await self.db.execute(
            select(Membership.id)
            .where(
                Membership.organization_id == org_id,
                Membership.role == OrgRole.OWNER.value,
            )
            .with_for_update()
        )
        return len(result.scalars().all())
