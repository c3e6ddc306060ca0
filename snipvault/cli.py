"""SnipVault CLI tool (snipvault)."""

from pathlib import Path

import typer

app = typer.Typer(name="snipvault", help="SnipVault security plane CLI")
db_app = typer.Typer(help="Database management commands")
settings_app = typer.Typer(help="Runtime settings")
flags_app = typer.Typer(help="Feature flags")
users_app = typer.Typer(help="User account maintenance")
app.add_typer(db_app, name="db")
app.add_typer(settings_app, name="settings")
app.add_typer(flags_app, name="flags")
app.add_typer(users_app, name="users")


def _store():
    from snipvault.core.config import settings
    from snipvault.db.session import SessionLocal
    from snipvault.services.settings_service import SettingsStore

    return SettingsStore(SessionLocal, ttl_seconds=settings.SETTINGS_CACHE_TTL_SECONDS)


def _audit():
    from snipvault.db.session import SessionLocal
    from snipvault.services.audit_service import AuditService

    return AuditService(SessionLocal)


@db_app.command("init")
def db_init():
    """Create all tables and seed default settings."""
    from snipvault.core.config import settings
    from snipvault.db.base import Base
    from snipvault.db.session import engine
    import snipvault.models  # noqa: F401  registers the tables

    if settings.DATABASE_URL.startswith("sqlite:///"):
        db_path = settings.DATABASE_URL.replace("sqlite:///", "", 1)
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=engine)
    typer.echo("✅ Tables created")
    db_seed()


@db_app.command("seed")
def db_seed():
    """Insert default settings and feature flags (existing values are kept)."""
    from snipvault.db.session import SessionLocal
    from snipvault.db.seeds.seed_settings import seed_settings

    db = SessionLocal()
    try:
        seed_settings(db)
    finally:
        db.close()
    typer.echo("✅ Default settings applied")


@settings_app.command("show")
def settings_show():
    """Print the effective foundation settings and every feature flag."""
    store = _store()
    foundation = store.get_foundation_settings().to_dict()
    for key, value in foundation.items():
        typer.echo(f"  {key}: {value}")
    for flag in store.list_flags():
        state = "on" if flag["enabled"] else "off"
        typer.echo(f"  [flag] {flag['key']}: {state}")


@settings_app.command("set")
def settings_set(
    key: str = typer.Argument(..., help="Setting key, e.g. maintenance.mode"),
    value: str = typer.Argument(..., help="New value"),
):
    """Write one setting, validated the same way as the admin API."""
    from snipvault.core.exceptions import ConfigValidation
    from snipvault.services.admin_service import SETTING_FIELDS, validate_settings_patch

    field = next((name for name, (setting_key, _) in SETTING_FIELDS.items() if setting_key == key), None)
    if field is None:
        typer.echo(f"❌ Unknown setting '{key}'")
        raise typer.Exit(code=1)
    try:
        stored = validate_settings_patch({field: value})[key]
    except ConfigValidation as e:
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(code=1)

    _store().set_string(key, stored)
    _audit().record(
        actor_id=None,
        action="admin.settings.update",
        target_type="system",
        target_id="settings",
        metadata={"settings": {key: stored}, "source": "cli"},
    )
    typer.echo(f"✅ {key} = {stored}")


@flags_app.command("set")
def flags_set(
    key: str = typer.Argument(..., help="Flag key, e.g. community.reports"),
    state: str = typer.Argument(..., help="on or off"),
):
    """Turn a feature flag on or off."""
    from snipvault.services.settings_service import is_truthy

    normalized = state.strip().lower()
    if normalized not in {"on", "off", "true", "false", "1", "0", "yes", "no"}:
        typer.echo(f"❌ Unknown state '{state}', expected on or off")
        raise typer.Exit(code=1)
    enabled = is_truthy(normalized)

    _store().set_flag(key, enabled)
    _audit().record(
        actor_id=None,
        action="admin.settings.update",
        target_type="system",
        target_id="settings",
        metadata={"featureFlags": {key: enabled}, "source": "cli"},
    )
    typer.echo(f"✅ {key} {'on' if enabled else 'off'}")


@users_app.command("unlock")
def users_unlock(user_id: int = typer.Argument(..., help="User ID")):
    """Clear a user's failed-login counter and lockout."""
    from snipvault.core.exceptions import ResourceNotFoundError
    from snipvault.db.session import SessionLocal
    from snipvault.services.account_service import account_service

    db = SessionLocal()
    try:
        user = account_service.unlock(db, user_id)
    except ResourceNotFoundError as e:
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(code=1)
    finally:
        db.close()

    _audit().record(
        actor_id=None,
        action="admin.user.unlock",
        target_type="user",
        target_id=user_id,
        metadata={"source": "cli"},
    )
    typer.echo(f"✅ Unlocked {user.username}")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("snipvault.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
