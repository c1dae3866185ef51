"""JWT creation and verification utilities (RS256) and the identity context."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi.security import HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict

from taskscope.shared.auth.rbac import GlobalRole, OrgRole
from taskscope.shared.errors import UnauthenticatedError

security_scheme = HTTPBearer(auto_error=False)


class MembershipClaim(BaseModel):
    """One (organization, role) pair held by an identity."""
    model_config = ConfigDict(frozen=True)

    organization_id: uuid.UUID
    role: OrgRole


class IdentityContext(BaseModel):
    """The acting principal for one request or operation.

    Immutable: an operation that must see membership changes made after the
    identity was built asks the IdentityResolver for a fresh one.
    """
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    email: str = ""
    global_role: GlobalRole = GlobalRole.VIEWER
    memberships: tuple[MembershipClaim, ...] = ()

    @property
    def is_super_admin(self) -> bool:
        return self.global_role == GlobalRole.SUPER_ADMIN

    @property
    def organization_ids(self) -> set[uuid.UUID]:
        return {m.organization_id for m in self.memberships}


class TokenClaims(BaseModel):
    """Decoded access token payload."""
    user_id: uuid.UUID
    email: str
    role: str = GlobalRole.VIEWER.value


def create_access_token(
    data: dict[str, Any],
    private_key: str,
    algorithm: str = "RS256",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed JWT access token."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire, "iat": now, "type": "access"})
    return jwt.encode(to_encode, private_key, algorithm=algorithm)


def verify_token(token: str, public_key: str, algorithm: str = "RS256") -> dict[str, Any]:
    """Verify and decode a JWT token."""
    try:
        return jwt.decode(token, public_key, algorithms=[algorithm])
    except JWTError as e:
        raise UnauthenticatedError(f"Invalid token: {e}")


def decode_access_token(token: str, public_key: str, algorithm: str = "RS256") -> TokenClaims:
    """Verify an access token and return its claims."""
    payload = verify_token(token, public_key, algorithm)
    if payload.get("type") != "access":
        raise UnauthenticatedError("Invalid token type")
    try:
        return TokenClaims(
            user_id=uuid.UUID(payload["sub"]),
            email=payload.get("email", ""),
            role=payload.get("role", GlobalRole.VIEWER.value),
        )
    except (KeyError, ValueError):
        raise UnauthenticatedError("Malformed token subject")
