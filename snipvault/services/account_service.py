"""Account security state — lockout, lifecycle status, role and session version.

Each mutator is a single UPDATE statement. Session-version bumps are computed
by the database (``session_version + 1``) so the counter only ever grows, even
when two admins act on the same account at once. The anonymous identity is
never touched by any of them.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, text, update
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Session

from snipvault.core.exceptions import ConfigValidation, ResourceNotFoundError
from snipvault.core.permissions import Role, normalize_role
from snipvault.db.base import utc_now
from snipvault.db.upsert import upsert
from snipvault.models.user import ANONYMOUS_USER_ID, User, UserStatus

logger = logging.getLogger("snipvault.accounts")


def is_locked(user: User, now: Optional[datetime] = None) -> bool:
    """A user is locked iff ``locked_until`` is set and in the future."""
    if user.locked_until is None:
        return False
    return user.locked_until > (now or utc_now())


def _mutable(user_id: int):
    return (User.id == user_id, User.id != ANONYMOUS_USER_ID)


def zero_id_sql_mode(current: Optional[str]) -> str:
    """MySQL ``sql_mode`` that stores an explicit 0 in an AUTO_INCREMENT column."""
    modes = [mode for mode in (current or "").split(",") if mode]
    if "NO_AUTO_VALUE_ON_ZERO" not in modes:
        modes.append("NO_AUTO_VALUE_ON_ZERO")
    return ",".join(modes)


def _insert_anonymous_user(db: Session, values: Dict[str, Any]) -> None:
    """Insert the anonymous row unless one already exists. The caller commits."""
    engine = db.get_bind()
    if engine.dialect.name != "mysql":
        upsert(db, User.__table__, values, index_elements=["id"])
        return

    # MySQL turns an explicit 0 into the next AUTO_INCREMENT value unless
    # NO_AUTO_VALUE_ON_ZERO is set, so the row goes through its own connection.
    with engine.connect() as conn:
        previous = conn.scalar(text("SELECT @@SESSION.sql_mode"))
        conn.execute(text("SET SESSION sql_mode = :mode"), {"mode": zero_id_sql_mode(previous)})
        try:
            conn.execute(mysql.insert(User.__table__).values(**values).prefix_with("IGNORE"))
            conn.commit()
        finally:
            conn.execute(text("SET SESSION sql_mode = :mode"), {"mode": previous or ""})


def get_or_create_anonymous_user(db: Session) -> User:
    """Return the singleton read-only identity, creating it on first use."""
    existing = db.get(User, ANONYMOUS_USER_ID)
    if existing is not None:
        return existing

    username = f"anon-{secrets.token_hex(8)}"
    _insert_anonymous_user(db, {
        "id": ANONYMOUS_USER_ID,
        "username": username,
        "username_normalized": username.lower(),
        "password_hash": "",
        "role": Role.READ_ONLY.value,
        "status": UserStatus.ACTIVE.value,
    })
    # Ends the read snapshot so a row written by another request is visible.
    db.commit()
    user = db.get(User, ANONYMOUS_USER_ID)
    if user is None:
        logger.error("Anonymous user could not be created")
        raise RuntimeError("anonymous user unavailable")
    return user


class AccountService:
    """Mutators for the security fields on the user record."""

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise ResourceNotFoundError("User not found")
        return user

    @staticmethod
    def _refetch(db: Session, user_id: int) -> User:
        db.commit()
        user = db.scalar(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        if user is None:
            raise ResourceNotFoundError("User not found")
        return user

    @staticmethod
    def record_failed_login(
        db: Session,
        user: User,
        max_attempts: int = 5,
        lockout_minutes: int = 15,
        now: Optional[datetime] = None,
    ) -> User:
        """Count a wrong password; lock once the count reaches ``max_attempts``."""
        now = now or utc_now()
        next_attempts = (user.failed_login_attempts or 0) + 1
        locked_until = None
        if next_attempts >= max_attempts:
            locked_until = now + timedelta(minutes=max(1, lockout_minutes))

        db.execute(
            update(User)
            .where(*_mutable(user.id))
            .values(failed_login_attempts=next_attempts, locked_until=locked_until)
        )
        return AccountService._refetch(db, user.id)

    @staticmethod
    def reset_failed_login_attempts(db: Session, user_id: int) -> None:
        db.execute(
            update(User)
            .where(*_mutable(user_id))
            .values(failed_login_attempts=0, locked_until=None)
        )
        db.commit()

    @staticmethod
    def record_successful_login(db: Session, user_id: int, now: Optional[datetime] = None) -> User:
        db.execute(
            update(User)
            .where(User.id == user_id)
            .values(failed_login_attempts=0, locked_until=None, last_login_at=now or utc_now())
        )
        return AccountService._refetch(db, user_id)

    @staticmethod
    def unlock(db: Session, user_id: int) -> User:
        """Clear the failure counter and the lock. Status is left as is."""
        result = db.execute(
            update(User)
            .where(*_mutable(user_id))
            .values(failed_login_attempts=0, locked_until=None)
        )
        if result.rowcount == 0:
            db.rollback()
            raise ResourceNotFoundError("User not found")
        return AccountService._refetch(db, user_id)

    @staticmethod
    def update_status(db: Session, user_id: int, status: str) -> User:
        try:
            status = UserStatus(str(status).upper()).value
        except ValueError:
            raise ConfigValidation("Invalid status value")

        result = db.execute(
            update(User)
            .where(*_mutable(user_id))
            .values(
                status=status,
                is_active=status != UserStatus.SUSPENDED.value,
                session_version=User.session_version + 1,
            )
        )
        if result.rowcount == 0:
            db.rollback()
            raise ResourceNotFoundError("User not found")
        return AccountService._refetch(db, user_id)

    @staticmethod
    def toggle_active(db: Session, user_id: int) -> User:
        """Flip between ACTIVE and SUSPENDED."""
        user = AccountService.get_user(db, user_id)
        target = (
            UserStatus.ACTIVE.value
            if user.status == UserStatus.SUSPENDED.value
            else UserStatus.SUSPENDED.value
        )
        return AccountService.update_status(db, user_id, target)

    @staticmethod
    def update_role(db: Session, user_id: int, role: str) -> User:
        upper = str(role or "").strip().upper()
        if upper not in {r.value for r in Role}:
            raise ConfigValidation("Invalid role value")

        result = db.execute(
            update(User)
            .where(*_mutable(user_id))
            .values(role=normalize_role(upper).value, session_version=User.session_version + 1)
        )
        if result.rowcount == 0:
            db.rollback()
            raise ResourceNotFoundError("User not found")
        return AccountService._refetch(db, user_id)

    @staticmethod
    def increment_session_version(db: Session, user_id: int) -> User:
        result = db.execute(
            update(User)
            .where(*_mutable(user_id))
            .values(session_version=User.session_version + 1)
        )
        if result.rowcount == 0:
            db.rollback()
            raise ResourceNotFoundError("User not found")
        return AccountService._refetch(db, user_id)

    @staticmethod
    def set_force_password_reset(db: Session, user_id: int, force_password_reset: bool) -> User:
        result = db.execute(
            update(User)
            .where(*_mutable(user_id))
            .values(
                force_password_reset=bool(force_password_reset),
                session_version=User.session_version + 1,
            )
        )
        if result.rowcount == 0:
            db.rollback()
            raise ResourceNotFoundError("User not found")
        return AccountService._refetch(db, user_id)


account_service = AccountService()
