"""Database engine and request-scoped sessions."""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from rukun.config import get_settings


def is_memory_sqlite(url: str) -> bool:
    """True for SQLite URLs without a database file."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return False
    database = parsed.database or ""
    return database in ("", ":memory:") or parsed.query.get("mode") == "memory"


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for ``url``.

    In-memory SQLite gets a single shared connection so the database outlives
    individual sessions. File-backed SQLite keeps a connection per session and
    other backends ping pooled connections before use.
    """
    if is_memory_sqlite(url):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, echo=echo)
    return create_engine(url, pool_pre_ping=True, echo=echo)


engine = build_engine(get_settings().database_url, echo=get_settings().database_echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session and close it once the request finishes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "build_engine",
    "is_memory_sqlite",
    "engine",
    "SessionLocal",
    "get_db",
]
