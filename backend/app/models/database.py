"""SQLAlchemy engine and sessions for the bridge's settings store."""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from ..config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False},  # sync routes run in the threadpool
    echo=False,
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragmas(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Iterator[Session]:
    """Dependency for FastAPI endpoints."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for code outside a request (startup, background tasks)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_database() -> None:
    """Create the settings table if it does not exist yet."""
    from . import gateway_config  # noqa: F401  (registers the model)
    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        journal = conn.execute(text("PRAGMA journal_mode=WAL")).scalar()
        conn.commit()
    if str(journal).lower() != "wal":
        logger.warning("SQLite WAL mode unavailable (journal_mode=%s)", journal)
