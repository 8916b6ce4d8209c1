"""
DivorceIQ Market Atlas - Database Connection Management
SQLAlchemy configuration for the hosted reference-data backend
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from config.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_connect_args(database_url: str) -> dict:
    # Postgres-specific connection option (timezone)
    if database_url.startswith("postgresql"):
        return {"options": "-c timezone=utc"}
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


# SQLAlchemy engine
# For production, use NullPool so the hosted pooler owns connection reuse
engine = create_engine(
    settings.DATABASE_URL,
    poolclass=NullPool if settings.ENVIRONMENT == "production" else None,
    echo=settings.DEBUG,
    connect_args=_engine_connect_args(settings.DATABASE_URL),
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            db.execute(...)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        db.close()


def get_db_session() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI endpoints.

    Usage:
        @app.get("/endpoint")
        def endpoint(db: Session = Depends(get_db_session)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def test_connection() -> bool:
    """
    Test database connectivity and presence of the location table.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with get_db() as db:
            result = db.execute(text("SELECT 1"))
            assert result.scalar() == 1

            count = db.execute(text("SELECT COUNT(*) FROM location")).scalar()
            logger.info(f"Database connection successful. Found {count} location rows")

            return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


if __name__ == "__main__":
    # Test connection when run directly
    logging.basicConfig(level=logging.INFO)
    if test_connection():
        print("Database connection successful")
    else:
        print("Database connection failed")
