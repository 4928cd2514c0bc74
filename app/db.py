"""Database engine, declarative base and session helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings

Base = declarative_base()


def _engine_kwargs(url: str) -> dict[str, Any]:
    """Pool options per backend; in-memory SQLite must share one connection."""
    settings = get_settings()
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
    }


def build_engine(url: str | None = None) -> Engine:
    url = url or get_settings().database_url
    return create_engine(url, **_engine_kwargs(url))


class DatabaseManager:
    """Owns the engine and session factory for the process."""

    def __init__(self, url: str | None = None) -> None:
        self.engine = build_engine(url)
        self.session_factory = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False
        )

    @contextmanager
    def db_session(self) -> Iterator[Session]:
        """Yield a session, rolling back on error and always closing."""
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


db_manager = DatabaseManager()
engine = db_manager.engine
SessionLocal = db_manager.session_factory


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
