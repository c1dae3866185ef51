"""User directory routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from taskscope.dependencies import get_current_identity, get_user_service
from taskscope.schemas import UpdateUserRoleRequest, UserResponse
from taskscope.services import UserService
from taskscope.shared.auth import IdentityContext

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    identity: IdentityContext = Depends(get_current_identity),
    user_service: UserService = Depends(get_user_service),
) -> list[UserResponse]:
    return await user_service.list_users(identity)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    identity: IdentityContext = Depends(get_current_identity),
    user_service: UserService = Depends(get_user_service),
) -> UserResponse:
    return await user_service.get(user_id)


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: uuid.UUID,
    data: UpdateUserRoleRequest,
    identity: IdentityContext = Depends(get_current_identity),
    user_service: UserService = Depends(get_user_service),
) -> UserResponse:
    """Change a user's global role. Super admins only."""
    return await user_service.update_global_role(user_id, data.role, identity)
