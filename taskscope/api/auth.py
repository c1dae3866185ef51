"""Authentication routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from taskscope.dependencies import get_auth_service, get_current_identity
from taskscope.schemas import AuthResponse, IdentityResponse, LoginRequest, RegisterRequest
from taskscope.services import AuthService
from taskscope.shared.auth import IdentityContext

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    data: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Register a new user account."""
    return await auth_service.register(data)


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password."""
    return await auth_service.login(data)


@router.get("/me", response_model=IdentityResponse)
async def get_me(
    identity: IdentityContext = Depends(get_current_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> IdentityResponse:
    """The caller's identity, as currently stored."""
    return await auth_service.me(identity)
