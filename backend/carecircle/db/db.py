from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from carecircle.core.config import get_settings

settings = get_settings()


def _engine_kwargs() -> dict:
    if not settings.database.is_postgres:
        # SQLite: local-only mode; the session is shared across request threads
        return {"connect_args": {"check_same_thread": False}}

    options = (
        f"-c statement_timeout={settings.database.statement_timeout_ms} "
        f"-c lock_timeout={settings.database.lock_timeout_ms}"
    )
    return {
        "pool_size": settings.database.pool_size,
        "max_overflow": settings.database.max_overflow,
        "pool_timeout": settings.database.pool_timeout_seconds,
        "pool_recycle": settings.database.pool_recycle_seconds,
        "connect_args": {
            "connect_timeout": settings.database.connect_timeout_seconds,
            "options": options,
        },
    }

# Create the SQLAlchemy engine and session factory
engine = create_engine(
    settings.database.url,
    pool_pre_ping=True,
    **_engine_kwargs(),
)

SessionLocal = sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)

def get_db():
    """Dependency that provides a database session."""
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commits everything done inside the block, or nothing at all."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
