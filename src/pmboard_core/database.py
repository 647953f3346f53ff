"""Database connection and session management."""
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings

settings = get_settings()


def build_engine(database_url: str, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    SQLite gets cross-thread access and foreign key enforcement (needed for
    ON DELETE CASCADE / SET NULL); other backends get a conservative pool.
    """
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        db_engine = create_engine(database_url, connect_args=connect_args, **kwargs)
        event.listen(db_engine, "connect", _enable_sqlite_foreign_keys)
        return db_engine

    return create_engine(
        database_url,
        pool_pre_ping=True,          # Verify connections before using
        pool_size=3,                 # Base pool of 3 connections
        max_overflow=7,              # Allow up to 10 total connections
        pool_recycle=3600,           # Recycle connections every hour
        pool_timeout=30,             # Timeout after 30 seconds
        **kwargs,
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine(settings.database_url)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
