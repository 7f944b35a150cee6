"""Database session management."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from friendradar.core.config import settings


def _connect_args(url: str) -> dict:
    # sync endpoints share connections across threadpool workers
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.debug,
    connect_args=_connect_args(settings.database_url),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Request-scoped session. WebSocket connections hold one for their lifetime."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
