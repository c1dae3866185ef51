"""Identity resolution from storage."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.models import User
from taskscope.services.memberships import MembershipService
from taskscope.shared.auth import IdentityContext, MembershipClaim
from taskscope.shared.auth.rbac import GlobalRole
from taskscope.shared.errors import UnauthenticatedError


class IdentityResolver:
    """Builds IdentityContext values from the current state of the store."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.memberships = MembershipService(db)

    async def resolve(self, user_id: uuid.UUID) -> IdentityContext:
        """Re-read the user and their memberships; inactive or unknown users are unauthenticated."""
        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise UnauthenticatedError("User not found or inactive")

        memberships = tuple(
            MembershipClaim(organization_id=org_id, role=role)
            for org_id, role in await self.memberships.memberships_for(user_id)
        )
        return IdentityContext(
            id=user.id,
            email=user.email,
            global_role=GlobalRole(user.role),
            memberships=memberships,
        )
