"""SQLModel database engine and session management.

Holds dashboard users, the trading-account registry and the collection log.
Time-series data lives in the key-value store, not here.
"""

import logging

from sqlmodel import SQLModel, create_engine, Session

from backend.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def create_db_and_tables():
    """Create all tables. Called on startup."""
    import backend.models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ready")


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
