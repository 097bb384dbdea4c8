"""
Database configuration with connection pooling and retry logic.

PostgreSQL gets a tuned connection pool and statement timeouts. SQLite
(used for local development and tests) gets a plain engine.
"""

import time
import logging
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError, DisconnectionError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from app.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str):
    """
    Create an engine for the given URL.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Configured Engine
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )

    pg_engine = create_engine(
        database_url,
        pool_size=15,  # Number of connections to maintain
        max_overflow=20,  # Maximum connections beyond pool_size
        pool_timeout=30,  # Seconds to wait for connection from pool
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,
        echo=False,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000",
        },
    )

    @event.listens_for(pg_engine, "connect")
    def set_connection_timeout(dbapi_conn, connection_record):
        """Set connection-level timeouts."""
        with dbapi_conn.cursor() as cursor:
            cursor.execute("SET statement_timeout = '30s'")
            cursor.execute("SET idle_in_transaction_session_timeout = '60s'")

    @event.listens_for(pg_engine, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        """Handle connection checkout with retry logic."""
        retry_count = 0
        max_retries = 3

        while retry_count < max_retries:
            try:
                with dbapi_conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                break
            except (OperationalError, DisconnectionError) as e:
                retry_count += 1
                if retry_count >= max_retries:
                    logger.error(f"Failed to get database connection after {max_retries} retries: {e}")
                    raise
                time.sleep(0.1 * retry_count)  # Exponential backoff

    return pg_engine


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Get database session with automatic cleanup.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        db.rollback()
        logger.error(f"Database session error: {e}", exc_info=True)
        raise
    finally:
        db.close()


def check_database_health() -> dict:
    """
    Check database health and connectivity.

    Returns:
        Dictionary with health status and metrics
    """
    try:
        start_time = time.time()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        response_time = (time.time() - start_time) * 1000  # Convert to ms

        health = {
            "status": "healthy",
            "response_time_ms": round(response_time, 2),
        }
        if isinstance(engine.pool, QueuePool):
            health["pool"] = {
                "size": engine.pool.size(),
                "checked_in": engine.pool.checkedin(),
                "checked_out": engine.pool.checkedout(),
                "overflow": engine.pool.overflow(),
            }
        return health
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return {
            "status": "unhealthy",
            "error": str(e),
        }
