from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from app.core.settings import get_database_settings


class Base(DeclarativeBase):
    pass


def _make_engine_url() -> str:
    db = get_database_settings()
    return db.DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    # SQLite connections are shared with the threadpool that runs sync routes
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(_make_engine_url(), **_engine_kwargs(_make_engine_url()))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    # Import models so their tables are registered on Base.metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
