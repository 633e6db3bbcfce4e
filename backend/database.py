"""
Database configuration and session management
"""

import structlog
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from contextlib import contextmanager
from config import settings

logger = structlog.get_logger()

# Create SQLAlchemy engine
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {},
    echo=settings.DEBUG,
    pool_pre_ping=True  # Verify connections before using
)

# Records are handed to async callers after the session closes
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def init_db():
    """Initialize database - create all tables"""
    # Register models on Base.metadata
    import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("database_initialized", url=settings.DATABASE_URL)
    except Exception as e:
        logger.error("database_init_failed", error=str(e))
        raise


@contextmanager
def get_db_context(session_factory=None):
    """
    Get database session as context manager

    Args:
        session_factory: Optional sessionmaker, defaults to SessionLocal

    Yields:
        Session: SQLAlchemy database session
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
    finally:
        db.close()
