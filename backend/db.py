import logging

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from config import get_settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str):
    """Create an engine for the given URL.

    In-memory SQLite gets a single shared connection so every session sees
    the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False, pool_pre_ping=True)


DATABASE_URL = get_settings().resolved_database_url()

# Log database driver for observability
db_driver = DATABASE_URL.split(":", 1)[0] if ":" in DATABASE_URL else "unknown"
logger.info(f"DB_URL_DRIVER={db_driver}")

engine = make_engine(DATABASE_URL)


def is_postgres(bind) -> bool:
    """Check if an engine or connection talks to PostgreSQL."""
    return bind.dialect.name == "postgresql"


def create_db_and_tables(bind=None):
    """Create database and tables if they don't exist.
    This is safe to call multiple times - it won't wipe existing data.
    """
    # Register table metadata
    import models  # noqa: F401

    SQLModel.metadata.create_all(bind if bind is not None else engine)


def get_session():
    """Get database session."""
    with Session(engine) as session:
        yield session
