import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
def admin(make_user):
    return make_user("boss", role="SUPER_ADMIN")


@pytest.fixture
def member(make_user):
    return make_user("member", role="USER")


def test_user_role_cannot_reach_admin(client, member, auth_headers):
    response = client.get("/api/admin/users", headers=auth_headers(member))
    assert response.status_code == 403
    assert response.json() == {"message": "Insufficient permissions"}


def test_moderator_reads_but_cannot_write(client, make_user, member, auth_headers):
    moderator = make_user("mod", role="MODERATOR")
    headers = auth_headers(moderator)

    assert client.get("/api/admin/users", headers=headers).status_code == 200
    assert client.get("/api/admin/audit", headers=headers).status_code == 200
    assert client.patch(f"/api/admin/users/{member.id}/unlock", headers=headers).status_code == 403
    assert client.patch("/api/admin/settings", json={}, headers=headers).status_code == 403


def test_list_users(client, admin, member, auth_headers):
    response = client.get("/api/admin/users", params={"limit": 500}, headers=auth_headers(admin))
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert {u["username"] for u in body["users"]} == {"boss", "member"}


def test_unknown_user_is_404(client, admin, auth_headers):
    assert client.get("/api/admin/users/9999", headers=auth_headers(admin)).status_code == 404


def test_self_mutation_is_refused(client, admin, auth_headers):
    headers = auth_headers(admin)
    for method, path, body in (
        ("DELETE", f"/api/admin/users/{admin.id}", None),
        ("PATCH", f"/api/admin/users/{admin.id}/status", {"status": "SUSPENDED"}),
        ("PATCH", f"/api/admin/users/{admin.id}/role", {"role": "USER"}),
        ("PATCH", f"/api/admin/users/{admin.id}/reset-sessions", None),
    ):
        response = client.request(method, path, json=body, headers=headers)
        assert response.status_code == 400, path


def test_reset_sessions_invalidates_existing_token(client, admin, member, auth_headers):
    member_headers = auth_headers(member)
    assert client.get("/api/auth/verify", headers=member_headers).status_code == 200

    response = client.patch(f"/api/admin/users/{member.id}/reset-sessions", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["session_version"] == 2

    stale = client.get("/api/auth/verify", headers=member_headers)
    assert stale.status_code == 401
    assert stale.json()["code"] == "session_invalidated"


def test_role_change_invalidates_token_and_new_login_carries_role(client, admin, member, auth_headers):
    old_headers = auth_headers(member)
    client.patch(f"/api/admin/users/{member.id}/role", json={"role": "MODERATOR"}, headers=auth_headers(admin))

    assert client.get("/api/auth/verify", headers=old_headers).status_code == 401
    login = client.post("/api/auth/login", json={"username": "member", "password": "password123"})
    assert login.json()["user"]["role"] == "MODERATOR"


def test_suspend_blocks_existing_token_and_login(client, admin, member, auth_headers):
    member_headers = auth_headers(member)
    response = client.patch(
        f"/api/admin/users/{member.id}/status", json={"status": "SUSPENDED"}, headers=auth_headers(admin),
    )
    assert response.status_code == 200

    assert client.get("/api/auth/verify", headers=member_headers).status_code == 403
    login = client.post("/api/auth/login", json={"username": "member", "password": "password123"})
    assert login.status_code == 403
    assert login.json() == {"error": "Account suspended"}


def test_invalid_status_and_role_are_rejected(client, admin, member, auth_headers):
    headers = auth_headers(admin)
    assert client.patch(
        f"/api/admin/users/{member.id}/status", json={"status": "BANNED"}, headers=headers,
    ).status_code == 400
    assert client.patch(
        f"/api/admin/users/{member.id}/role", json={"role": "OWNER"}, headers=headers,
    ).status_code == 400


def test_unlock_clears_lock_but_not_status(client, admin, make_user, auth_headers):
    store = client.app.state.settings_store
    store.set_string("security.lockout.max_attempts", "2")
    make_user("locked")
    for _ in range(2):
        client.post("/api/auth/login", json={"username": "locked", "password": "nope"})
    assert client.post("/api/auth/login", json={"username": "locked", "password": "password123"}).status_code == 423

    users = client.get("/api/admin/users", params={"search": "locked"}, headers=auth_headers(admin)).json()
    user_id = users["users"][0]["id"]
    response = client.patch(f"/api/admin/users/{user_id}/unlock", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["status"] == "ACTIVE"
    assert response.json()["locked_until"] is None

    assert client.post("/api/auth/login", json={"username": "locked", "password": "password123"}).status_code == 200


def test_each_mutation_writes_one_audit_row(client, admin, member, auth_headers):
    headers = auth_headers(admin)
    audit = client.app.state.audit_service

    steps = [
        ("PATCH", f"/api/admin/users/{member.id}/unlock", None, "admin.user.unlock"),
        ("PATCH", f"/api/admin/users/{member.id}/force-password-reset", {"forcePasswordReset": True},
         "admin.user.force_password_reset"),
        ("PATCH", f"/api/admin/users/{member.id}/toggle-active", None, "admin.user.toggle_active"),
        ("PATCH", f"/api/admin/users/{member.id}/status", {"status": "ACTIVE"}, "admin.user.approve"),
        ("PATCH", f"/api/admin/users/{member.id}/role", {"role": "MODERATOR"}, "admin.user.role_change"),
        ("PATCH", f"/api/admin/users/{member.id}/reset-sessions", None, "admin.user.reset_sessions"),
        ("PATCH", "/api/admin/settings", {"registrationMode": "APPROVAL"}, "admin.settings.update"),
        ("DELETE", f"/api/admin/users/{member.id}", None, "admin.user.delete"),
    ]
    for method, path, body, action in steps:
        before = audit.count()
        response = client.request(method, path, json=body, headers=headers)
        assert response.status_code == 200, path
        assert audit.count() == before + 1
        entry = audit.list(limit=1)[0]
        assert entry["action"] == action
        assert entry["actor_id"] == admin.id
        if action == "admin.settings.update":
            assert entry["target_id"] == "settings"
        else:
            assert entry["target_id"] == str(member.id)


def test_failed_mutation_writes_no_audit_row(client, admin, auth_headers):
    audit = client.app.state.audit_service
    before = audit.count()
    response = client.patch("/api/admin/users/4242/unlock", headers=auth_headers(admin))
    assert response.status_code == 404
    assert audit.count() == before


def test_settings_roundtrip_and_validation(client, admin, auth_headers):
    headers = auth_headers(admin)

    bad = client.patch("/api/admin/settings", json={"lockoutMaxAttempts": 0}, headers=headers)
    assert bad.status_code == 400
    assert "message" in bad.json()

    bad_flag = client.patch("/api/admin/settings", json={"featureFlags": {"community.reports": "yes"}}, headers=headers)
    assert bad_flag.status_code == 400

    ok = client.patch(
        "/api/admin/settings",
        json={"registrationMode": "closed", "featureFlags": {"community.reports": True}},
        headers=headers,
    )
    assert ok.status_code == 200
    assert ok.json()["foundation"]["registrationMode"] == "CLOSED"

    snapshot = client.get("/api/admin/settings", headers=headers).json()
    flags = {f["key"]: f["enabled"] for f in snapshot["featureFlags"]}
    assert flags["community.reports"] is True


def test_audit_listing_caps_limit(client, admin, auth_headers):
    audit = client.app.state.audit_service
    for i in range(105):
        audit.record(admin.id, "test.event", "user", i)

    response = client.get("/api/admin/audit", params={"limit": 500}, headers=auth_headers(admin))
    body = response.json()
    assert body["total"] == 105
    assert len(body["logs"]) == 100
