"""User Directory - registration, lookup, scoped listing and global roles."""

from __future__ import annotations

import logging
import uuid

from passlib.context import CryptContext
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.models import Membership, User
from taskscope.schemas import RegisterRequest, UserResponse
from taskscope.shared.auth import IdentityContext
from taskscope.shared.auth.rbac import GlobalRole, parse_global_role
from taskscope.shared.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from taskscope.shared.events import USER_ROLE_CHANGED
from taskscope.shared.events.dispatcher import publish_on_commit

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt_sha256", "bcrypt"], deprecated="auto")


class UserService:
    """User business logic."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def register(self, data: RegisterRequest) -> User:
        email = data.email.lower()
        existing = await self.db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Email already registered")

        user = User(
            email=email,
            hashed_password=pwd_context.hash(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            role=GlobalRole.VIEWER.value,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info("User %s registered", user.id)
        return user

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get(self, user_id: uuid.UUID) -> UserResponse:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return UserResponse.model_validate(user)

    async def list_users(self, identity: IdentityContext) -> list[UserResponse]:
        """Super admins see everyone; others see users sharing an organization with them."""
        stmt = select(User).order_by(User.created_at)
        if not identity.is_super_admin:
            my_orgs = select(Membership.organization_id).where(Membership.user_id == identity.id)
            colleagues = select(Membership.user_id).where(Membership.organization_id.in_(my_orgs))
            stmt = stmt.where(or_(User.id == identity.id, User.id.in_(colleagues)))
        result = await self.db.execute(stmt)
        return [UserResponse.model_validate(u) for u in result.scalars().all()]

    async def update_global_role(
        self, user_id: uuid.UUID, role: str, identity: IdentityContext
    ) -> UserResponse:
        if not identity.is_super_admin:
            logger.info("User %s denied changing global role of %s", identity.id, user_id)
            raise ForbiddenError("Only super admins can change global roles")
        new_role = parse_global_role(role)

        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.id == identity.id and new_role != GlobalRole.SUPER_ADMIN:
            raise InvalidInputError("Super admins cannot demote themselves")

        old_role = user.role
        user.role = new_role.value
        await self.db.flush()

        publish_on_commit(self.db, {
            "event_type": USER_ROLE_CHANGED,
            "actor_id": str(identity.id),
            "resource_id": str(user.id),
            "details": {"old_role": old_role, "new_role": new_role.value},
        })
        return UserResponse.model_validate(user)
