"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Iterator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from recon_gateway.config import settings


def build_engine(database_url: str):
    """Create engine; SQLite needs cross-thread access for the API, servers get a pool"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class SessionUnitOfWork:
    """Commit the session when the block succeeds, roll it back when it raises"""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def __call__(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


def init_db() -> None:
    """Create tables that do not exist yet"""
    from recon_gateway.infrastructure.database.models import Base

    Base.metadata.create_all(bind=engine)
