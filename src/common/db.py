"""Database session helpers."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_engine(database_url: str | None = None) -> Engine:
    """Create (once per URL) a SQLAlchemy engine from DATABASE_URL."""
    if database_url is None:
        load_dotenv()
        database_url = os.environ["DATABASE_URL"]
    logger.info("Creating database engine")
    return create_engine(database_url, pool_pre_ping=True)


@contextmanager
def get_session(database_url: str | None = None) -> Iterator[Session]:
    """Yield a session bound to the configured database, closing it afterwards."""
    session = sessionmaker(bind=get_engine(database_url))()
    try:
        yield session
    finally:
        session.close()
