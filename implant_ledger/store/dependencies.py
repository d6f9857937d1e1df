"""DB wiring for the reference/cache store (SQLAlchemy sessions)."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import StoreSettings, get_store_settings
from implant_ledger.store.db import metadata


def _engine_kwargs(url: str) -> dict:
    kwargs: dict = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
    return kwargs


def build_engine(settings: StoreSettings) -> Engine:
    return create_engine(settings.database_url, echo=settings.echo_sql, **_engine_kwargs(settings.database_url))


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def create_schema(engine: Engine) -> None:
    """Create all tables directly (dev/tests). Deployments use Alembic."""
    # Register models on the shared metadata.
    import implant_ledger.store.models  # noqa: F401

    metadata.create_all(engine)


@lru_cache(maxsize=4)
def _engine_for_url(url: str) -> Engine:
    return build_engine(StoreSettings(database_url=url))


def get_store_engine() -> Engine:
    return _engine_for_url(get_store_settings().database_url)


@lru_cache(maxsize=4)
def _sessionmaker_for_url(url: str) -> sessionmaker[Session]:
    return build_session_factory(_engine_for_url(url))


def get_session_factory() -> sessionmaker[Session]:
    return _sessionmaker_for_url(get_store_settings().database_url)


def get_store_db() -> Iterator[Session]:
    """FastAPI dependency that yields a store Session."""

    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "build_engine",
    "build_session_factory",
    "create_schema",
    "get_session_factory",
    "get_store_db",
    "get_store_engine",
]
