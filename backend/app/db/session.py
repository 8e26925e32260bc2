"""Database session management."""
from collections.abc import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker, Session

from app.core.config import settings


def make_engine(url: str, **kwargs) -> Engine:
    """Create an engine; connections are verified before use."""
    kwargs.setdefault("pool_pre_ping", True)
    kwargs.setdefault("echo", settings.DEBUG)  # Log SQL queries in debug mode
    return create_engine(url, **kwargs)


engine = make_engine(settings.database_url)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Iterator[Session]:
    """
    Dependency function to get database session.
    Yields a database session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
