from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from volsync.config import Settings, get_settings
from volsync.core.exceptions import AuthenticationError, AuthorizationError

ADMIN_ROLE = "admin"

# Security scheme
security = HTTPBearer(auto_error=False)


class AdminPrincipal(BaseModel):
    """Operator identity carried by an admin bearer token."""

    user_id: str
    email: Optional[str] = None
    role: str


def create_access_token(
    data: dict, settings: Settings, expires_delta: Optional[timedelta] = None
) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_principal(token: str, settings: Settings) -> AdminPrincipal:
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        return AdminPrincipal(
            user_id=str(payload.get("sub") or payload.get("user_id") or ""),
            email=payload.get("email"),
            role=str(payload.get("role") or ""),
        )
    except (JWTError, ValidationError):
        raise AuthenticationError("Invalid authentication credentials")


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> AdminPrincipal:
    """Resolve the calling operator and require the admin role."""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    if not settings.SECRET_KEY:
        raise AuthenticationError("Operator authentication is not configured")

    principal = decode_principal(credentials.credentials, settings)
    if not principal.user_id or principal.role != ADMIN_ROLE:
        raise AuthorizationError()
    return principal
