"""
Database engine, session management, and base model.

Every model inherits from Base. Every request gets a session
from get_db().
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from mobile_payments.config import get_settings

settings = get_settings()

# --- Engine ---
# pool_pre_ping=True tests connections before using them, so a
# restarted database does not surface as a failed state transition.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# --- Session Factory ---
# autocommit=False: the Ledger Store commits each transition
# explicitly, one conditional write at a time.
# autoflush=False: nothing reaches the database until the store
# flushes, so a version conflict is raised at a single point.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally pattern ensures the session is always
    closed, even when the endpoint raises.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
