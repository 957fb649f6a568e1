"""
Database Engine & Session Management
SQLAlchemy setup with dependency injection for FastAPI.
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from stableupi.config import get_settings

settings = get_settings()

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# Ensure data directory exists for file-backed SQLite
_sqlite_dir = os.path.dirname(settings.DATABASE_URL.replace("sqlite:///", "")) if _is_sqlite else ""
if _sqlite_dir and ":memory:" not in settings.DATABASE_URL:
    os.makedirs(_sqlite_dir, exist_ok=True)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},  # Required for SQLite
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes on finish."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables. Called once at application startup."""
    from stableupi.models import transaction as _transaction_model   # noqa: F401
    from stableupi.models import payout as _payout_model             # noqa: F401
    from stableupi.models import beneficiary as _beneficiary_model   # noqa: F401
    from stableupi.models import audit as _audit_model               # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
