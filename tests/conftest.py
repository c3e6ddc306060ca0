"""Shared pytest fixtures: in-memory database, fake clock, app factory."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import snipvault.models  # noqa: F401
from snipvault.core.config import Settings
from snipvault.core.security import create_session_token, hash_password
from snipvault.db.base import Base
from snipvault.main import create_app
from snipvault.models.user import User, UserStatus
from snipvault.services.audit_service import AuditService
from snipvault.services.settings_service import SettingsStore


@dataclass
class FakeClock:
    """Manually advanced clock, in seconds."""

    now: float = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def config() -> Settings:
    return Settings(
        _env_file=None,
        JWT_SECRET="test-secret",
        ALLOWED_HOSTS="",
        DISABLE_ACCOUNTS=False,
        DISABLE_INTERNAL_ACCOUNTS=False,
        ALLOW_PASSWORD_CHANGES=True,
        BASE_PATH="",
    )


@pytest.fixture
def settings_store(session_factory: sessionmaker, clock: FakeClock) -> SettingsStore:
    return SettingsStore(session_factory, ttl_seconds=5.0, clock=clock)


@pytest.fixture
def audit(session_factory: sessionmaker) -> AuditService:
    return AuditService(session_factory)


@pytest.fixture
def make_app(
    config: Settings, session_factory: sessionmaker, clock: FakeClock
) -> Callable[..., FastAPI]:
    """Build a fresh app; keyword overrides are applied to the settings."""

    def _make(**overrides) -> FastAPI:
        app_config = config.model_copy(update=overrides) if overrides else config
        return create_app(app_config, session_factory=session_factory, clock=clock)

    return _make


@pytest.fixture
def app(make_app: Callable[..., FastAPI]) -> FastAPI:
    return make_app()


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Insert a user directly, bypassing registration rules."""

    def _make(
        username: str,
        password: str = "password123",
        role: str = "USER",
        status: str = UserStatus.ACTIVE.value,
        email: Optional[str] = None,
    ) -> User:
        user = User(
            username=username,
            username_normalized=username.lower(),
            password_hash=hash_password(password),
            email=email,
            role=role,
            status=status,
            is_active=status != UserStatus.SUSPENDED.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(config: Settings) -> Callable[[User], dict]:
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_session_token(user, config)}"}

    return _headers
