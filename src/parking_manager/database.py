"""SQLAlchemy engine/session wiring."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from parking_manager.config import get_settings

SessionLocal = sessionmaker(autocommit=False, autoflush=False)
Base = declarative_base()

_engine: Engine | None = None


def utc_now() -> datetime:
    # Stored naive so SQLite round-trips compare cleanly.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def configure_engine(database_url: str | None = None) -> Engine:
    global _engine
    url = database_url or get_settings().database_url

    # SQLite needs check_same_thread off for the threadpool FastAPI runs sync routes in.
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
    else:
        engine = create_engine(url, pool_pre_ping=True)

    if _engine is not None:
        _engine.dispose()
    _engine = engine
    SessionLocal.configure(bind=engine)
    return engine


def get_engine() -> Engine:
    if _engine is None:
        return configure_engine()
    return _engine


def init_db() -> None:
    # Models must be imported so their tables are registered on Base.metadata.
    from parking_manager import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def get_db() -> Iterator[Session]:
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
