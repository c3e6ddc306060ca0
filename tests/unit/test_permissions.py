import pytest

from snipvault.core.permissions import (
    ROLE_PERMISSIONS, Permission, Role, has_permission, is_privileged,
    normalize_role, permission_list,
)

pytestmark = pytest.mark.unit


def test_super_admin_has_every_permission():
    for permission in Permission:
        assert has_permission(Role.SUPER_ADMIN, permission)


def test_admin_holds_all_admin_permissions():
    assert has_permission("ADMIN", "admin.system.settings.write")
    assert has_permission("ADMIN", "admin.users.write")


def test_moderator_cannot_write_users_or_settings():
    assert has_permission("MODERATOR", "admin.panel.access")
    assert has_permission("MODERATOR", "admin.audit.read")
    assert not has_permission("MODERATOR", "admin.users.write")
    assert not has_permission("MODERATOR", "admin.system.settings.write")


def test_read_only_is_narrowest():
    assert permission_list("READ_ONLY") == ["community.view.public", "snippet.read.self"]
    assert not has_permission("READ_ONLY", "snippet.write.self")


def test_unknown_role_falls_back_to_user():
    assert normalize_role("WIZARD") is Role.USER
    assert normalize_role(None) is Role.USER
    assert normalize_role(" admin ") is Role.ADMIN
    assert has_permission("WIZARD", "snippet.write.self")
    assert not has_permission("WIZARD", "admin.panel.access")


def test_unknown_or_empty_permission_is_denied():
    assert not has_permission("SUPER_ADMIN", "")
    assert not has_permission("SUPER_ADMIN", "does.not.exist")


def test_role_map_is_read_only():
    with pytest.raises(TypeError):
        ROLE_PERMISSIONS[Role.USER] = frozenset()


def test_privileged_roles():
    assert is_privileged("SUPER_ADMIN")
    assert is_privileged("ADMIN")
    assert not is_privileged("MODERATOR")
    assert not is_privileged("bogus")
