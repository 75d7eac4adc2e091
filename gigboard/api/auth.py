"""Authentication utilities for the gigboard API."""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Annotated

import bcrypt
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from gigboard.errors import ForbiddenError, ServiceError
from gigboard.identity.models import Role
from gigboard.identity.service import AccountBlockedError

from .config import Settings, get_settings
from .deps import ServicesDep

# Cookie name for httpOnly auth
AUTH_COOKIE_NAME = "gigboard_auth"

# Make bearer optional to allow cookie fallback
security = HTTPBearer(auto_error=False)


class AuthenticationError(ServiceError):
    code = "UNAUTHORIZED"
    status_code = 401


def create_access_token(
    user_id: str,
    role: Role | str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token carrying the user id and role."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": user_id,
        "role": role.value if isinstance(role, Role) else role,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")


def set_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
    )


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        AUTH_COOKIE_NAME,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )


def verify_admin_password(plain: str, configured: str | None) -> bool:
    """Check the shared admin password (bcrypt hash or plain text)."""
    if not configured or not plain:
        return False
    if configured.startswith("$2"):
        try:
            return bcrypt.checkpw(plain.encode(), configured.encode())
        except ValueError:
            return False
    return hmac.compare_digest(plain.encode(), configured.encode())


class AuthContext:
    """Identity resolved from the access token."""

    def __init__(self, user_id: str, role: str, name: str | None = None, email: str | None = None):
        self.user_id = user_id
        self.role = role
        self.name = name
        self.email = email

    def to_dict(self) -> dict:
        return {"id": self.user_id, "role": self.role, "name": self.name, "email": self.email}


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    services: ServicesDep,
    request: Request,
) -> AuthContext:
    """Resolve the caller from the Authorization header or the auth cookie."""
    token = credentials.credentials if credentials else request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        raise AuthenticationError("Not authenticated - provide Authorization header or auth cookie")

    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in {r.value for r in Role}:
        raise AuthenticationError("Invalid token payload")

    if role == Role.ADMIN.value:
        return AuthContext(user_id=user_id, role=role, name="admin")

    user = services.identity.get_user(role, user_id)
    if user is None or user.is_temporary:
        raise AuthenticationError("Invalid token.")
    if user.blocked:
        raise AccountBlockedError(
            "Your account has been restricted. Contact support for assistance."
        )
    return AuthContext(user_id=user.id, role=role, name=user.name, email=user.email)


# Type alias for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]


def require_role(role: Role):
    """Dependency factory restricting a route to one role."""

    async def _check(user: CurrentUser) -> AuthContext:
        if user.role != role.value:
            raise ForbiddenError(f"Access denied. This route is for {role.value}s only.")
        return user

    return _check


CurrentClient = Annotated[AuthContext, Depends(require_role(Role.CLIENT))]
CurrentWorker = Annotated[AuthContext, Depends(require_role(Role.WORKER))]
AdminUser = Annotated[AuthContext, Depends(require_role(Role.ADMIN))]
