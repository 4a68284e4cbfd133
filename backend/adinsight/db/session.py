"""Engine and session factory configuration."""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from adinsight.core.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create an engine tuned for long-running worker tasks.

    PostgreSQL gets a pre-pinged, recycled pool with TCP keepalives.
    SQLite (local runs and tests) gets foreign keys switched on so
    cascading deletes behave the same way.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    # pool_pre_ping: Test connections before using (handles stale connections)
    # pool_recycle: Recycle connections after 30 minutes (prevents timeout)
    return create_engine(
        database_url,
        echo=False,
        future=True,
        poolclass=QueuePool,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=5,
        max_overflow=10,
        connect_args={
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        },
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    # Rows handed back to callers stay readable after commit
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )


settings = get_settings()
engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables."""
    from adinsight.db import models  # noqa: F401  (registers tables on Base)
    from adinsight.db.base import Base

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Ensured tables exist on {target.url.render_as_string(hide_password=True)}")
