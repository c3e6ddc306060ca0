"""JWT authentication and RBAC authorization helpers."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from snipvault.core.config import Settings, settings
from snipvault.core.exceptions import (
    AccountSuspended, Forbidden, SessionInvalidated, Unauthenticated,
)
from snipvault.core.permissions import Role, has_permission, normalize_role, permission_list
from snipvault.db.session import get_db
from snipvault.models.user import User, UserStatus
from snipvault.services.account_service import get_or_create_anonymous_user

logger = logging.getLogger("snipvault.security")

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash."""
    if not hashed_password:
        return False
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    try:
        return bcrypt.checkpw(pwd_bytes, hashed_bytes)
    except ValueError:
        return False


def create_session_token(user: User, config: Settings = settings, role: Optional[str] = None) -> str:
    """Sign a credential carrying the user's id, role, status and session version."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=config.TOKEN_EXPIRY_MINUTES)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": role or normalize_role(user.role).value,
        "status": user.status or UserStatus.ACTIVE.value,
        "session_version": user.session_version or 1,
        "exp": expire,
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str, config: Settings = settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, config.jwt_secret, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise Unauthenticated("Invalid token")


def app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", settings)


def token_from_request(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """Bearer header first, then the auth cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(app_settings(request).AUTH_COOKIE_NAME) or None


def resolve_token_user(db: Session, token: str, config: Settings = settings) -> User:
    """Load and verify the user a token names.

    Raises Unauthenticated for an unknown user, AccountSuspended for a
    suspended or inactive account and SessionInvalidated when the token's
    session version is stale.
    """
    payload = decode_token(token, config)
    try:
        user = db.get(User, int(payload.get("sub")))
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid token")
    if user is None:
        raise Unauthenticated("User not found")

    if user.status == UserStatus.SUSPENDED.value or not user.is_active:
        raise AccountSuspended()

    if (payload.get("session_version") or 1) != (user.session_version or 1):
        raise SessionInvalidated()
    return user


@dataclass
class CurrentUser:
    """Identity attached to an authenticated request."""

    id: int
    username: str
    role: Role
    status: str
    session_version: int = 1
    force_password_reset: bool = False
    is_anonymous: bool = False
    permissions: List[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return has_permission(self.role, "admin.panel.access")


def attach_permission_context(request: Request, identity: CurrentUser) -> CurrentUser:
    """Normalize the role and materialize its permission list on the request."""
    identity.role = normalize_role(identity.role)
    identity.permissions = permission_list(identity.role)
    request.state.user = identity
    request.state.permissions = identity.permissions
    return identity


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """Resolve and verify the caller's credential."""
    config = app_settings(request)

    if config.DISABLE_ACCOUNTS:
        anonymous = get_or_create_anonymous_user(db)
        return attach_permission_context(request, CurrentUser(
            id=anonymous.id,
            username=anonymous.username,
            role=Role.READ_ONLY,
            status=UserStatus.ACTIVE.value,
            is_anonymous=True,
        ))

    token = token_from_request(request, credentials)
    if not token:
        raise Unauthenticated()

    user = resolve_token_user(db, token, config)
    return attach_permission_context(request, CurrentUser(
        id=user.id,
        username=user.username,
        role=normalize_role(user.role),
        status=user.status,
        session_version=user.session_version or 1,
        force_password_reset=bool(user.force_password_reset),
    ))


class RequirePermission:
    """Dependency that checks the caller's role grants at least one permission."""

    def __init__(self, *permissions: str):
        self.permissions = tuple(str(getattr(p, "value", p)) for p in permissions)

    async def __call__(self, user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not any(has_permission(user.role, permission) for permission in self.permissions):
            logger.debug(
                "Permission denied: user=%s, role=%s, permission=%s",
                user.username or user.id, user.role.value, ",".join(self.permissions),
            )
            raise Forbidden()
        return user


def require_permission(permission: str) -> RequirePermission:
    return RequirePermission(permission)


def require_any_permission(permissions: Iterable[str]) -> RequirePermission:
    return RequirePermission(*permissions)
