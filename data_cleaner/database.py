"""Database engine setup.

The cleanup gateway talks to PostgreSQL through a pooled SQLAlchemy
engine.  Pool sizing mirrors the DB_MAX_OPEN_CONNS / DB_MAX_IDLE_CONNS
settings: idle connections kept in the pool, with the difference
allowed as overflow.
"""
from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from .config import Settings


logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> Engine:
    """Create the SQLAlchemy engine used by the row store gateway."""
    pool_size = max(1, min(settings.db_max_idle_conns, settings.db_max_open_conns))
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=settings.db_max_open_conns - pool_size,
        pool_recycle=settings.db_conn_max_lifetime,
        future=True,
    )
    url = make_url(settings.database_url)
    logger.info(f"Configured PostgreSQL engine host={url.host} port={url.port} database={url.database}")
    return engine


def dispose_engine(engine: Engine) -> None:
    """Close every pooled connection."""
    try:
        engine.dispose()
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
    else:
        logger.info("Database connections closed")
