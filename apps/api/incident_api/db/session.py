"""Database session management."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from incident_api.settings import get_settings

settings = get_settings()


def make_engine(url: str) -> Engine:
    """Create an engine with pool settings appropriate for the backend."""
    if url.startswith("sqlite"):
        # Writers wait on the database lock instead of failing with "database is locked"
        return create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    """Session factory used by the ledger; records stay readable after commit."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = make_engine(settings.database_url_computed)

SessionLocal = make_session_factory(engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
