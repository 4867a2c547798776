"""Database configuration for the task series engine."""
import logging
import os

from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

logger = logging.getLogger(__name__)

# Load environment variables but prioritize local development
load_dotenv()

# Use the DATABASE_URL from environment variable, with fallback to SQLite for local dev
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./taskseries.db")


def build_engine(database_url: str = DATABASE_URL, echo: bool = False) -> Engine:
    """Create a SQLModel engine, applying SQLite-specific connection settings."""
    if not database_url.startswith("sqlite"):
        logger.info("[DB CONFIG] Using PostgreSQL database")
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    logger.info(f"[DB CONFIG] Using SQLite database: {database_url}")
    in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
    # Sessions run in worker threads, so SQLite must not pin connections to one thread;
    # an in-memory database also has to live on a single shared connection
    kwargs = {"poolclass": StaticPool} if in_memory else {}
    engine = create_engine(
        database_url, echo=echo, connect_args={"check_same_thread": False}, **kwargs
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


engine = build_engine()
