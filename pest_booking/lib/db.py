"""
Database engine and session management using SQLAlchemy 2.x.
Provides connection pooling and session factory for the application.
"""
import enum
from typing import Any, Dict, Generator, Type

from sqlalchemy import Enum as SQLEnum, create_engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from sqlalchemy.pool import StaticPool

from pest_booking.lib.settings import settings


# Base class for all SQLAlchemy models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def enum_type(enum_cls: Type[enum.Enum], name: str) -> SQLEnum:
    """
    Column type for a string enum that stores the enum *values*
    ("in-progress", "eco-friendly") rather than member names.
    """
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Pool options per backend; SQLite (tests, local dev) shares one connection."""
    if database_url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": 5,
        "max_overflow": 10,
    }


# Create engine with connection pooling
engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)


# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get a database session.

    Usage:
        @router.get("/bookings")
        def list_bookings(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Create all tables. Development shortcut for CREATE_TABLES_ON_STARTUP;
    deployed databases are managed with Alembic.
    """
    Base.metadata.create_all(bind=engine)
