"""
Database Configuration
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.orm.exc import StaleDataError
from typing import Generator, Optional

from payreq.core.config import settings
from payreq.core.exceptions import ConcurrentModification

# Get the properly formatted database URL
db_url = settings.database_url

# Create engine
engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False} if "sqlite" in db_url else {},
    echo=settings.DEBUG
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base model
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Ensures the session is closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def flush_versioned(db: Session) -> None:
    """Flush, reporting a lost optimistic-lock race as ConcurrentModification"""
    try:
        db.flush()
    except StaleDataError:
        raise ConcurrentModification()


def check_version(entity, expected_version: Optional[int]) -> None:
    """Reject writes based on a version the client no longer holds"""
    if expected_version is not None and expected_version != entity.version_id:
        raise ConcurrentModification()


def init_db(bind=None):
    """Initialize database tables"""
    # Import all models to register them with Base
    from payreq.models import (
        Company, User, Role, Permission, RolePermission, UserRole,
        PaymentRequest, PaymentRequestItem, PaymentRecord, ExpenseRequest,
        Notification, RequestCounter
    )
    Base.metadata.create_all(bind=bind or engine)
