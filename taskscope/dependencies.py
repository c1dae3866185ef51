"""FastAPI dependencies: sessions, settings, the current identity and services."""

from __future__ import annotations

from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.config import ServiceSettings
from taskscope.services import (
    AuditService, AuthService, IdentityResolver, MembershipService,
    OrganizationService, TaskService, UserService,
)
from taskscope.shared.auth import IdentityContext, decode_access_token, security_scheme
from taskscope.shared.database import db_manager
from taskscope.shared.errors import UnauthenticatedError


async def get_db() -> AsyncIterator[AsyncSession]:
    """Get async database session."""
    async for session in db_manager.get_session():
        yield session


def get_app_settings(request: Request) -> ServiceSettings:
    return request.app.state.settings


async def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_app_settings),
) -> IdentityContext:
    """Verify the bearer token and resolve the caller's identity from current storage."""
    if credentials is None:
        raise UnauthenticatedError("Missing bearer token")
    claims = decode_access_token(
        credentials.credentials, request.app.state.jwt_public_key, settings.jwt_algorithm
    )
    identity = await IdentityResolver(db).resolve(claims.user_id)
    request.state.identity = identity
    return identity


async def get_auth_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_app_settings),
) -> AuthService:
    """Inject AuthService with its signing configuration."""
    return AuthService(
        db=db,
        private_key=request.app.state.jwt_private_key,
        algorithm=settings.jwt_algorithm,
        access_expire_minutes=settings.jwt_access_token_expire_minutes,
    )


async def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


async def get_membership_service(db: AsyncSession = Depends(get_db)) -> MembershipService:
    return MembershipService(db)


async def get_organization_service(db: AsyncSession = Depends(get_db)) -> OrganizationService:
    return OrganizationService(db)


async def get_task_service(db: AsyncSession = Depends(get_db)) -> TaskService:
    return TaskService(db)


async def get_audit_service(db: AsyncSession = Depends(get_db)) -> AuditService:
    return AuditService(db)
