"""Auth Service - Business Logic."""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.models import User
from taskscope.schemas import (
    AuthResponse, IdentityResponse, LoginRequest, MembershipClaimResponse,
    RegisterRequest, UserResponse,
)
from taskscope.services.identity import IdentityResolver
from taskscope.services.users import UserService, pwd_context
from taskscope.shared.auth import IdentityContext, create_access_token
from taskscope.shared.errors import UnauthenticatedError
from taskscope.shared.events import USER_LOGIN
from taskscope.shared.events.dispatcher import event_dispatcher

logger = logging.getLogger(__name__)


class AuthService:
    """Handles user authentication business logic."""

    def __init__(
        self,
        db: AsyncSession,
        private_key: str,
        algorithm: str,
        access_expire_minutes: int,
    ) -> None:
        self.db = db
        self.users = UserService(db)
        self.private_key = private_key
        self.algorithm = algorithm
        self.access_expire = timedelta(minutes=access_expire_minutes)

    async def register(self, data: RegisterRequest) -> AuthResponse:
        """Register a new user and sign them in."""
        user = await self.users.register(data)
        return self._auth_response(user)

    async def login(self, data: LoginRequest) -> AuthResponse:
        """Authenticate user and return an access token. Every attempt on a known account is audited."""
        user = await self.users.get_by_email(data.email)
        if user is None:
            raise UnauthenticatedError("Invalid credentials")

        if not pwd_context.verify(data.password, user.hashed_password) or not user.is_active:
            self._record_login(user, success=False)
            logger.info("Failed login for user %s", user.id)
            raise UnauthenticatedError("Invalid credentials")

        # Upgrade hash scheme transparently if the context marks it deprecated
        if pwd_context.needs_update(user.hashed_password):
            user.hashed_password = pwd_context.hash(data.password)
            await self.db.flush()

        self._record_login(user, success=True)
        return self._auth_response(user)

    async def me(self, identity: IdentityContext) -> IdentityResponse:
        fresh = await IdentityResolver(self.db).resolve(identity.id)
        return IdentityResponse(
            id=fresh.id,
            email=fresh.email,
            global_role=fresh.global_role.value,
            memberships=[
                MembershipClaimResponse(organization_id=m.organization_id, role=m.role.value)
                for m in fresh.memberships
            ],
        )

    # ---- Helpers ----

    def _auth_response(self, user: User) -> AuthResponse:
        token = create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role},
            self.private_key,
            self.algorithm,
            self.access_expire,
        )
        return AuthResponse(access_token=token, user=UserResponse.model_validate(user))

    def _record_login(self, user: User, success: bool) -> None:
        # Not bound to the session: failed attempts roll the request back
        event_dispatcher.publish({
            "event_type": USER_LOGIN,
            "actor_id": str(user.id),
            "resource_id": str(user.id),
            "details": {"success": success},
            "ip_address": None,
        })
