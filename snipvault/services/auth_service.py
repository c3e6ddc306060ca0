"""Auth service — registration and login state machine."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from snipvault.core.config import Settings, settings
from snipvault.core.exceptions import (
    AccountLocked, AccountPending, AccountSuspended, FeatureDisabled,
    InvalidCredentials, RegistrationClosed, ResourceConflictError,
)
from snipvault.core.permissions import Role, normalize_role, permission_list
from snipvault.core.security import create_session_token, hash_password, verify_password
from snipvault.models.user import ANONYMOUS_USER_ID, User, UserStatus
from snipvault.services.account_service import (
    account_service, get_or_create_anonymous_user, is_locked,
)
from snipvault.services.audit_service import AuditService
from snipvault.services.settings_service import SettingsStore, normalize_registration_mode

logger = logging.getLogger("snipvault.auth")


@dataclass
class RegistrationResult:
    user: User
    pending: bool
    token: Optional[str] = None


@dataclass
class LoginResult:
    user: User
    token: str


def serialize_user(user: User) -> Dict[str, Any]:
    role = normalize_role(user.role)
    permissions = permission_list(role)
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "name": user.name,
        "role": role.value,
        "status": user.status or UserStatus.ACTIVE.value,
        "permissions": permissions,
        "is_admin": "admin.panel.access" in permissions,
        "is_active": bool(user.is_active),
        "force_password_reset": bool(user.force_password_reset),
        "failed_login_attempts": user.failed_login_attempts or 0,
        "locked_until": user.locked_until,
        "session_version": user.session_version or 1,
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
    }


class AuthService:
    """Handles registration, login and password changes."""

    def __init__(self, settings_store: SettingsStore, audit: AuditService, config: Settings = settings):
        self.settings_store = settings_store
        self.audit = audit
        self.config = config

    @staticmethod
    def count_users(db: Session) -> int:
        """Real accounts, excluding the anonymous identity."""
        return db.scalar(
            select(func.count()).select_from(User).where(User.id != ANONYMOUS_USER_ID)
        ) or 0

    @staticmethod
    def find_by_username(db: Session, username: str) -> Optional[User]:
        return db.scalar(select(User).where(User.username_normalized == username.strip().lower()))

    def auth_config(self, db: Session) -> Dict[str, Any]:
        foundation = self.settings_store.get_foundation_settings()
        registration_mode = normalize_registration_mode(foundation.registration_mode)
        has_users = self.count_users(db) > 0
        allow_new_accounts = not has_users or (
            not self.config.DISABLE_ACCOUNTS
            and registration_mode != "CLOSED"
            and not self.config.DISABLE_INTERNAL_ACCOUNTS
        )
        return {
            "authRequired": True,
            "allowNewAccounts": allow_new_accounts,
            "registrationMode": registration_mode,
            "hasUsers": has_users,
            "disableAccounts": self.config.DISABLE_ACCOUNTS,
            "disableInternalAccounts": self.config.DISABLE_INTERNAL_ACCOUNTS,
            "allowPasswordChanges": self.config.ALLOW_PASSWORD_CHANGES,
            "communityMode": str(foundation.community_mode).upper(),
            "maintenanceMode": str(foundation.maintenance_mode).upper(),
        }

    def register(
        self,
        db: Session,
        username: str,
        password: str,
        request: Optional[Request] = None,
    ) -> RegistrationResult:
        """Create an account; the very first one becomes SUPER_ADMIN."""
        if self.config.DISABLE_INTERNAL_ACCOUNTS:
            raise FeatureDisabled("Internal account registration is disabled")

        has_users = self.count_users(db) > 0
        registration_mode = normalize_registration_mode(
            self.settings_store.get_string("registration.mode", "OPEN")
        )

        role = Role.USER
        status = UserStatus.ACTIVE
        if not has_users:
            role = Role.SUPER_ADMIN
        elif registration_mode == "CLOSED":
            raise RegistrationClosed()
        elif registration_mode == "APPROVAL":
            status = UserStatus.PENDING

        if self.find_by_username(db, username) is not None:
            raise ResourceConflictError("Username already exists")

        user = User(
            username=username.strip(),
            username_normalized=username.strip().lower(),
            password_hash=hash_password(password),
            role=role.value,
            status=status.value,
            is_active=True,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceConflictError("Username already exists")
        db.refresh(user)

        self.audit.record(
            actor_id=user.id,
            action="user.registration",
            target_type="user",
            target_id=user.id,
            metadata={"role": user.role, "status": user.status, "registrationMode": registration_mode},
            request=request,
        )

        if status == UserStatus.PENDING:
            return RegistrationResult(user=user, pending=True)
        return RegistrationResult(user=user, pending=False, token=create_session_token(user, self.config))

    def _blocked(self, user: User, reason: str, request: Optional[Request], **metadata: Any) -> None:
        self.audit.record(
            actor_id=user.id,
            action="auth.login.blocked",
            target_type="user",
            target_id=user.id,
            metadata={"reason": reason, **metadata},
            request=request,
        )

    def login(
        self,
        db: Session,
        username: str,
        password: str,
        request: Optional[Request] = None,
    ) -> LoginResult:
        """Authenticate a username/password pair.

        Raises:
            InvalidCredentials: unknown user or wrong password.
            AccountLocked: lockout window active; the password is not checked.
            AccountPending / AccountSuspended: lifecycle gate.
        """
        if self.config.DISABLE_INTERNAL_ACCOUNTS:
            raise FeatureDisabled("Internal accounts are disabled")

        user = self.find_by_username(db, username)
        if user is None or user.id == ANONYMOUS_USER_ID:
            self.audit.record(
                actor_id=None,
                action="auth.login.failed",
                target_type="user",
                target_id=username,
                metadata={"reason": "user_not_found", "username": username},
                request=request,
            )
            raise InvalidCredentials()

        if is_locked(user):
            self._blocked(user, "account_locked", request, lockedUntil=user.locked_until)
            raise AccountLocked(locked_until=user.locked_until)

        if not verify_password(password, user.password_hash):
            lockout = self.settings_store.get_foundation_settings().lockout
            account_service.record_failed_login(
                db, user,
                max_attempts=lockout.max_attempts,
                lockout_minutes=lockout.duration_minutes,
            )
            self.audit.record(
                actor_id=user.id,
                action="auth.login.failed",
                target_type="user",
                target_id=user.id,
                metadata={"reason": "invalid_password"},
                request=request,
            )
            raise InvalidCredentials()

        if user.status == UserStatus.PENDING.value:
            self._blocked(user, "pending_approval", request)
            raise AccountPending()

        if user.status == UserStatus.SUSPENDED.value or not user.is_active:
            self._blocked(user, "suspended", request)
            raise AccountSuspended()

        user = account_service.record_successful_login(db, user.id)
        self.audit.record(
            actor_id=user.id,
            action="auth.login.success",
            target_type="user",
            target_id=user.id,
            metadata={"role": user.role},
            request=request,
        )
        return LoginResult(user=user, token=create_session_token(user, self.config))

    def anonymous_session(self, db: Session) -> LoginResult:
        if not self.config.DISABLE_ACCOUNTS:
            raise FeatureDisabled("Anonymous login not allowed")
        user = get_or_create_anonymous_user(db)
        token = create_session_token(user, self.config, role=Role.READ_ONLY.value)
        return LoginResult(user=user, token=token)

    def change_password(
        self,
        db: Session,
        user_id: int,
        current_password: str,
        new_password: str,
        request: Optional[Request] = None,
    ) -> LoginResult:
        """Replace the password and hand back a token for the new session version."""
        if not self.config.ALLOW_PASSWORD_CHANGES:
            raise FeatureDisabled("Password changes are disabled")
        if self.config.DISABLE_INTERNAL_ACCOUNTS:
            raise FeatureDisabled("Internal accounts are disabled")

        user = account_service.get_user(db, user_id)
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")

        user.password_hash = hash_password(new_password)
        db.commit()
        user = account_service.set_force_password_reset(db, user_id, False)

        self.audit.record(
            actor_id=user_id,
            action="auth.password.changed",
            target_type="user",
            target_id=user_id,
            request=request,
        )
        return LoginResult(user=user, token=create_session_token(user, self.config))
