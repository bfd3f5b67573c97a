"""
Database configuration and session management.
"""
import os
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from shockball_analytics.core.config import settings


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL gets a pooled engine; SQLite (local runs and tests) gets
    foreign key enforcement switched on so referential ordering is
    checked the same way production checks it.
    """
    echo = os.getenv("SQL_ECHO", "false").lower() == "true"

    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
        enable_sqlite_foreign_keys(sqlite_engine)
        return sqlite_engine

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
        echo=echo,
    )


def enable_sqlite_foreign_keys(sqlite_engine: Engine) -> None:
    """Turn on ``PRAGMA foreign_keys`` for every new SQLite connection."""

    @event.listens_for(sqlite_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_db_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
    ```python
    @router.post("/sync")
    async def trigger(db: Session = Depends(get_db)):
        ...
    ```
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database tables."""
    from shockball_analytics.models.models import Base
    Base.metadata.create_all(bind=engine, checkfirst=True)
