# backend/parkzy/database.py
"""
Database engine, session factory, and metadata shared across the application.

The engine is created lazily so importing models never opens a connection.
"""

from datetime import datetime
from functools import lru_cache
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "future": True}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
        "future": True,
        "connect_args": {"connect_timeout": 10, "application_name": "parkzy_backend"},
    }


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Create (once) the application engine from settings."""
    engine = create_engine(
        settings.database_url,
        echo=settings.database_echo,
        **_engine_kwargs(settings.database_url),
    )

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    return engine


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine(), expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """
    Yield a database session for a single request.

    The session is always closed; uncommitted work is rolled back.
    """
    db = get_session_factory()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create tables for all registered models."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
