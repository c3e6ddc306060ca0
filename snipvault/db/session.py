"""Database engine, session factory, and dependency injection."""

from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from snipvault.core.config import settings


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine with pool options suited to the dialect."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    return create_engine(
        url,
        pool_size=20,
        max_overflow=80,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency that provides a DB session per request."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
