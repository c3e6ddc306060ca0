from datetime import timedelta

import pytest

from snipvault.core.exceptions import ConfigValidation, ResourceNotFoundError
from snipvault.db.base import utc_now
from snipvault.models.user import ANONYMOUS_USER_ID, UserStatus
from snipvault.services.account_service import (
    account_service, get_or_create_anonymous_user, is_locked, zero_id_sql_mode,
)

pytestmark = pytest.mark.unit


def test_lock_after_max_attempts(db, make_user):
    user = make_user("alice")
    now = utc_now()

    user = account_service.record_failed_login(db, user, max_attempts=2, lockout_minutes=5, now=now)
    assert user.failed_login_attempts == 1
    assert user.locked_until is None

    user = account_service.record_failed_login(db, user, max_attempts=2, lockout_minutes=5, now=now)
    assert user.failed_login_attempts == 2
    assert user.locked_until == now + timedelta(minutes=5)
    assert is_locked(user, now)
    assert not is_locked(user, now + timedelta(minutes=5, seconds=1))


def test_successful_login_clears_counter(db, make_user):
    user = make_user("bob")
    account_service.record_failed_login(db, user, max_attempts=5, lockout_minutes=5)

    user = account_service.record_successful_login(db, user.id)
    assert user.failed_login_attempts == 0
    assert user.locked_until is None
    assert user.last_login_at is not None


def test_unlock_keeps_status(db, make_user):
    user = make_user("carol", status=UserStatus.PENDING.value)
    account_service.record_failed_login(db, user, max_attempts=1, lockout_minutes=5)

    user = account_service.unlock(db, user.id)
    assert user.failed_login_attempts == 0
    assert user.locked_until is None
    assert user.status == UserStatus.PENDING.value


def test_status_change_bumps_session_version(db, make_user):
    user = make_user("dave")
    assert user.session_version == 1

    user = account_service.update_status(db, user.id, "suspended")
    assert user.status == UserStatus.SUSPENDED.value
    assert user.is_active is False
    assert user.session_version == 2

    user = account_service.toggle_active(db, user.id)
    assert user.status == UserStatus.ACTIVE.value
    assert user.is_active is True
    assert user.session_version == 3


def test_role_change_bumps_session_version_and_validates(db, make_user):
    user = make_user("erin")
    user = account_service.update_role(db, user.id, "moderator")
    assert user.role == "MODERATOR"
    assert user.session_version == 2

    with pytest.raises(ConfigValidation):
        account_service.update_role(db, user.id, "OWNER")


def test_session_version_only_grows(db, make_user):
    user = make_user("frank")
    versions = [account_service.increment_session_version(db, user.id).session_version for _ in range(3)]
    assert versions == [2, 3, 4]

    user = account_service.set_force_password_reset(db, user.id, True)
    assert user.force_password_reset is True
    assert user.session_version == 5


def test_missing_user_raises(db):
    with pytest.raises(ResourceNotFoundError):
        account_service.increment_session_version(db, 999)
    with pytest.raises(ConfigValidation):
        account_service.update_status(db, 999, "BANNED")


def test_anonymous_user_is_singleton_and_immutable(db):
    first = get_or_create_anonymous_user(db)
    second = get_or_create_anonymous_user(db)
    assert first.id == second.id == ANONYMOUS_USER_ID
    assert first.role == "READ_ONLY"

    with pytest.raises(ResourceNotFoundError):
        account_service.update_role(db, ANONYMOUS_USER_ID, "ADMIN")
    with pytest.raises(ResourceNotFoundError):
        account_service.increment_session_version(db, ANONYMOUS_USER_ID)


def test_anonymous_user_created_elsewhere_is_reused(db, session_factory):
    with session_factory() as other:
        created = get_or_create_anonymous_user(other)

    # a session that had not seen the row yet inserts nothing new
    again = get_or_create_anonymous_user(db)
    assert again.id == ANONYMOUS_USER_ID
    assert again.username == created.username


def test_zero_id_sql_mode():
    assert zero_id_sql_mode("") == "NO_AUTO_VALUE_ON_ZERO"
    assert zero_id_sql_mode(None) == "NO_AUTO_VALUE_ON_ZERO"
    assert zero_id_sql_mode("STRICT_TRANS_TABLES,NO_ENGINE_SUBSTITUTION") == (
        "STRICT_TRANS_TABLES,NO_ENGINE_SUBSTITUTION,NO_AUTO_VALUE_ON_ZERO"
    )
    assert zero_id_sql_mode("NO_AUTO_VALUE_ON_ZERO") == "NO_AUTO_VALUE_ON_ZERO"
