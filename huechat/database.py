import sqlite3
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from huechat.config import get_settings

settings = get_settings()

# check_same_thread=False needed for SQLite with FastAPI
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
    echo=settings.db_echo
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


@event.listens_for(Engine, "connect")
def _register_sqlite_functions(dbapi_connection, connection_record):
    """
    SQLite's built-in lower() only folds ASCII. Replace it with Python's
    str.lower so search matches "Ärger" the way Postgres does.
    """
    if isinstance(dbapi_connection, sqlite3.Connection):
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def utcnow() -> datetime:
    """
    Naive UTC timestamp. Every stored datetime uses this form so that
    comparisons behave the same on SQLite and Postgres.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    """
    Dependency that provides database session to route handlers.
    Ensures session is properly closed after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database schema.
    Creates all tables defined in models.
    Call this on application startup.
    """
    # Importing registers the mappers on Base.metadata
    import huechat.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
