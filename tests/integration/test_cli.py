import pytest
from typer.testing import CliRunner

from snipvault.cli import app as cli_app
from snipvault.core.config import settings
from snipvault.services.settings_service import SettingsStore

pytestmark = pytest.mark.integration

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_database(monkeypatch, engine, session_factory):
    monkeypatch.setattr(settings, "DATABASE_URL", "sqlite://")
    monkeypatch.setattr("snipvault.db.session.engine", engine)
    monkeypatch.setattr("snipvault.db.session.SessionLocal", session_factory)


def test_db_init_seeds_defaults_once(session_factory):
    assert runner.invoke(cli_app, ["db", "init"]).exit_code == 0

    store = SettingsStore(session_factory)
    store.set_string("registration.mode", "CLOSED")
    assert runner.invoke(cli_app, ["db", "seed"]).exit_code == 0

    store.clear_cache()
    assert store.get_string("registration.mode") == "CLOSED"
    assert store.get_string("security.lockout.max_attempts") == "5"
    assert {f["key"] for f in store.list_flags()} == {
        "community.public_library", "community.reports", "platform.ai_hooks",
    }


def test_settings_set_and_show(audit):
    result = runner.invoke(cli_app, ["settings", "set", "maintenance.mode", "ON"])
    assert result.exit_code == 0

    shown = runner.invoke(cli_app, ["settings", "show"])
    assert "maintenanceMode: ON" in shown.output
    assert audit.list()[0]["action"] == "admin.settings.update"
    assert audit.list()[0]["actor_id"] is None


def test_settings_set_rejects_invalid_values(session_factory, audit):
    store = SettingsStore(session_factory)

    result = runner.invoke(cli_app, ["settings", "set", "security.rate_limit.general_max", "0"])
    assert result.exit_code == 1
    assert "must be a positive integer" in result.output
    assert store.get_string("security.rate_limit.general_max") is None

    assert runner.invoke(cli_app, ["settings", "set", "registration.mode", "SOMETIMES"]).exit_code == 1
    assert runner.invoke(cli_app, ["settings", "set", "no.such.key", "1"]).exit_code == 1
    assert audit.count() == 0

    assert runner.invoke(cli_app, ["settings", "set", "registration.mode", "approval"]).exit_code == 0
    assert store.get_string("registration.mode") == "APPROVAL"


def test_flags_set_validates_state(session_factory):
    assert runner.invoke(cli_app, ["flags", "set", "community.reports", "maybe"]).exit_code == 1
    assert runner.invoke(cli_app, ["flags", "set", "community.reports", "on"]).exit_code == 0
    assert SettingsStore(session_factory).get_flag("community.reports") is True


def test_users_unlock(db, make_user, audit):
    from snipvault.services.account_service import account_service

    user = make_user("locked")
    account_service.record_failed_login(db, user, max_attempts=1, lockout_minutes=5)

    result = runner.invoke(cli_app, ["users", "unlock", str(user.id)])
    assert result.exit_code == 0
    assert "Unlocked locked" in result.output
    assert audit.list()[0]["action"] == "admin.user.unlock"

    assert runner.invoke(cli_app, ["users", "unlock", "999"]).exit_code == 1
