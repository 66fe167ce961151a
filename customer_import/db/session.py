import logging
import threading
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import StaticPool

from customer_import.core.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def _report_connection_failure(exc: Exception) -> None:
    """Log high-signal diagnostics when the service cannot reach the database."""
    logger.warning("Could not connect to database: %s", exc)
    logger.warning("The service will start but database operations will fail until the connection succeeds.")

    try:
        url = make_url(settings.database_url)
    except Exception as parse_error:  # pragma: no cover
        logger.warning("Unable to parse DATABASE_URL (%s); skipping detailed diagnostics.", parse_error)
        return

    masked_url = url.set(password="***" if url.password else None)
    logger.warning(
        "Database connection settings: dialect=%s driver=%s host=%s port=%s database=%s username=%s",
        masked_url.get_backend_name(),
        masked_url.get_driver_name() or "default",
        masked_url.host or "localhost",
        masked_url.port or "(default)",
        masked_url.database,
        masked_url.username,
    )


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite URLs (used by the test-suite and local development) share a single
    connection across worker threads; every other backend gets a bounded pool
    so that store calls cannot wait forever for a connection.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if not url.database or url.database == ":memory:":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_timeout=settings.db_pool_timeout_seconds,
    )


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                engine = build_engine(settings.database_url)
                try:
                    # Test connection eagerly so failures surface immediately.
                    with engine.connect() as conn:
                        conn.execute(text("SELECT 1"))
                except Exception as e:
                    _report_connection_failure(e)
                _engine = engine
    return _engine


def dispose_engine() -> None:
    """Release pooled connections and forget the cached engine."""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
