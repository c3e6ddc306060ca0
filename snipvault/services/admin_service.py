"""Admin service — user lifecycle actions and runtime settings."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from snipvault.core.exceptions import ConfigValidation, ResourceNotFoundError, SelfMutationError
from snipvault.core.security import CurrentUser
from snipvault.models.user import ANONYMOUS_USER_ID, User, UserStatus
from snipvault.services.account_service import account_service
from snipvault.services.audit_service import AuditService
from snipvault.services.auth_service import serialize_user
from snipvault.services.settings_service import (
    REGISTRATION_MODES, TOGGLE_MODES, SettingsStore,
)

logger = logging.getLogger("snipvault.admin")

# Patch field -> (setting key, kind)
SETTING_FIELDS = {
    "registration_mode": ("registration.mode", REGISTRATION_MODES),
    "community_mode": ("community.mode", TOGGLE_MODES),
    "maintenance_mode": ("maintenance.mode", TOGGLE_MODES),
    "lockout_max_attempts": ("security.lockout.max_attempts", int),
    "lockout_duration_minutes": ("security.lockout.duration_minutes", int),
    "rate_limit_window_ms": ("security.rate_limit.window_ms", int),
    "auth_rate_limit": ("security.rate_limit.auth_max", int),
    "public_rate_limit": ("security.rate_limit.public_max", int),
    "general_rate_limit": ("security.rate_limit.general_max", int),
}


def _positive_int(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigValidation(f"Invalid value for {field}")
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigValidation(f"Invalid value for {field}")
    if parsed < 1:
        raise ConfigValidation(f"{field} must be a positive integer")
    return parsed


def validate_settings_patch(patch: Dict[str, Any]) -> Dict[str, str]:
    """Turn a settings patch into ``{setting key: stored value}``.

    Raises ConfigValidation before anything is written, so a bad field never
    leaves the settings half-applied.
    """
    changes: Dict[str, str] = {}
    for field, (key, kind) in SETTING_FIELDS.items():
        value = patch.get(field)
        if value is None:
            continue
        if kind is int:
            changes[key] = str(_positive_int(field, value))
            continue
        normalized = str(value).strip().upper()
        if normalized not in kind:
            label = field.replace("_", " ")
            raise ConfigValidation(f"Invalid {label}")
        changes[key] = normalized
    return changes


def validate_feature_flags(flags: Optional[Dict[str, Any]]) -> Dict[str, bool]:
    if not flags:
        return {}
    validated: Dict[str, bool] = {}
    for key, enabled in flags.items():
        if not isinstance(enabled, bool):
            raise ConfigValidation(f"Feature flag {key} must be a boolean")
        validated[key] = enabled
    return validated


class AdminService:
    """Administrative operations. Each successful mutation writes one audit row."""

    def __init__(self, settings_store: SettingsStore, audit: AuditService):
        self.settings_store = settings_store
        self.audit = audit

    @staticmethod
    def assert_not_self(actor: CurrentUser, user_id: int) -> None:
        if actor.id == user_id:
            raise SelfMutationError()

    @staticmethod
    def assert_not_anonymous(user_id: int) -> None:
        if user_id == ANONYMOUS_USER_ID:
            raise SelfMutationError("Cannot modify anonymous user")

    def _audit(
        self,
        actor: CurrentUser,
        action: str,
        target_id: Any,
        request: Optional[Request],
        metadata: Optional[Dict[str, Any]] = None,
        target_type: str = "user",
    ) -> None:
        self.audit.record(
            actor_id=actor.id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            metadata=metadata,
            request=request,
        )

    # ---- users ----

    @staticmethod
    def list_users(
        db: Session,
        offset: int = 0,
        limit: int = 50,
        search: Optional[str] = None,
        status: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        query = select(User).where(User.id != ANONYMOUS_USER_ID)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(or_(
                User.username_normalized.like(pattern),
                func.lower(func.coalesce(User.email, "")).like(pattern),
            ))
        if status:
            query = query.where(User.status == status.upper())
        if role:
            query = query.where(User.role == role.upper())

        total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
        users = db.scalars(
            query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)
        ).all()
        return {"users": [serialize_user(u) for u in users], "total": total}

    @staticmethod
    def get_user_details(db: Session, user_id: int) -> Dict[str, Any]:
        if user_id == ANONYMOUS_USER_ID:
            raise ResourceNotFoundError("User not found")
        return serialize_user(account_service.get_user(db, user_id))

    def delete_user(self, db: Session, actor: CurrentUser, user_id: int, request: Optional[Request] = None) -> None:
        self.assert_not_self(actor, user_id)
        if user_id == ANONYMOUS_USER_ID:
            raise SelfMutationError("Cannot delete anonymous user")

        result = db.execute(delete(User).where(User.id == user_id))
        if result.rowcount == 0:
            db.rollback()
            raise ResourceNotFoundError("User not found")
        db.commit()
        self._audit(actor, "admin.user.delete", user_id, request)

    def toggle_active(self, db: Session, actor: CurrentUser, user_id: int, request: Optional[Request] = None) -> Dict[str, Any]:
        self.assert_not_self(actor, user_id)
        self.assert_not_anonymous(user_id)
        user = account_service.toggle_active(db, user_id)
        self._audit(actor, "admin.user.toggle_active", user_id, request, {"status": user.status})
        return serialize_user(user)

    def set_status(self, db: Session, actor: CurrentUser, user_id: int, status: str, request: Optional[Request] = None) -> Dict[str, Any]:
        self.assert_not_self(actor, user_id)
        user = account_service.update_status(db, user_id, status)
        action = "admin.user.approve" if user.status == UserStatus.ACTIVE.value else "admin.user.status_change"
        self._audit(actor, action, user_id, request, {"status": user.status})
        return serialize_user(user)

    def set_role(self, db: Session, actor: CurrentUser, user_id: int, role: str, request: Optional[Request] = None) -> Dict[str, Any]:
        self.assert_not_self(actor, user_id)
        user = account_service.update_role(db, user_id, role)
        self._audit(actor, "admin.user.role_change", user_id, request, {"role": user.role})
        return serialize_user(user)

    def unlock(self, db: Session, actor: CurrentUser, user_id: int, request: Optional[Request] = None) -> Dict[str, Any]:
        user = account_service.unlock(db, user_id)
        self._audit(actor, "admin.user.unlock", user_id, request)
        return serialize_user(user)

    def reset_sessions(self, db: Session, actor: CurrentUser, user_id: int, request: Optional[Request] = None) -> Dict[str, Any]:
        self.assert_not_self(actor, user_id)
        user = account_service.increment_session_version(db, user_id)
        self._audit(actor, "admin.user.reset_sessions", user_id, request, {"sessionVersion": user.session_version})
        return serialize_user(user)

    def force_password_reset(
        self,
        db: Session,
        actor: CurrentUser,
        user_id: int,
        force: bool = True,
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        user = account_service.set_force_password_reset(db, user_id, force)
        self._audit(actor, "admin.user.force_password_reset", user_id, request, {"forcePasswordReset": force})
        return serialize_user(user)

    # ---- settings ----

    def settings_snapshot(self) -> Dict[str, Any]:
        return {
            **self.settings_store.get_all(),
            "foundation": self.settings_store.get_foundation_settings().to_dict(),
        }

    def update_settings(
        self,
        actor: CurrentUser,
        patch: Dict[str, Any],
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        changes = validate_settings_patch(patch)
        flags = validate_feature_flags(patch.get("feature_flags"))

        for key, value in changes.items():
            self.settings_store.set_string(key, value, updated_by=actor.id)
        for key, enabled in flags.items():
            self.settings_store.set_flag(key, enabled, updated_by=actor.id)

        self._audit(
            actor,
            "admin.settings.update",
            "settings",
            request,
            {"settings": changes, "featureFlags": flags},
            target_type="system",
        )
        return self.settings_snapshot()
