"""
Database engine, session factory, and metadata for the SQLAlchemy adapter.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: Optional[str] = None, **kwargs: Any) -> Engine:
    """Create an engine for database_url (defaults to settings.database_url)."""
    if database_url is None:
        from booking_engine.core.config import settings

        database_url = settings.database_url

    options: Dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    options.update(kwargs)
    engine = create_engine(database_url, **options)
    logger.info("database_engine_created", extra={"dialect": engine.dialect.name})
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def init_db(engine: Engine) -> None:
    """Create the booking tables if they do not exist."""
    import booking_engine.models  # noqa: F401

    Base.metadata.create_all(engine)


def get_dialect_name(db: Session) -> str:
    bind = db.get_bind()
    return bind.dialect.name if bind is not None else ""
