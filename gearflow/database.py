"""Local report archive: SQLAlchemy engine, sessions and table setup.

Only generated reports and report schedules live here; gear, requests and
notifications belong to the hosted backend.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/gearflow.db"

_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA busy_timeout=5000;",
)


class Base(DeclarativeBase):
    """Declarative base for archive models."""


_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def _apply_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    for pragma in _SQLITE_PRAGMAS:
        cursor.execute(pragma)
    cursor.close()


def _build_engine(database_url: str, echo: bool) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    in_memory = ":memory:" in database_url
    if not in_memory and database_url.startswith("sqlite:///"):
        Path(database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    options = {"connect_args": {"check_same_thread": False}}
    if in_memory:
        # every session must share the one in-memory database
        options["poolclass"] = StaticPool
    engine = create_engine(database_url, echo=echo, pool_pre_ping=True, **options)
    event.listen(engine, "connect", _apply_pragmas)
    return engine


def get_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Return the process-wide engine, creating it on first use.

    Args:
        database_url: SQLAlchemy URL. Defaults to ``DATABASE_URL`` from the
            environment, then ``sqlite:///data/gearflow.db``.
        echo: Log every SQL statement.
    """
    global _engine
    if _engine is None:
        url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        _engine = _build_engine(url, echo)
        logger.info("Report archive engine created: %s", url)
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionFactory


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session scope that commits on success and rolls back on error.

    Usage::

        with get_session() as session:
            session.add(Report(...))
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(database_url: Optional[str] = None, echo: bool = False) -> None:
    """Create missing archive tables."""
    engine = get_engine(database_url=database_url, echo=echo)
    import gearflow.models  # noqa: F401  (registers the models)
    Base.metadata.create_all(bind=engine)
    logger.info("Report archive tables created / verified.")


def reset_db(database_url: Optional[str] = None) -> None:
    """Drop and recreate the archive tables. Deletes every stored report."""
    engine = get_engine(database_url=database_url)
    import gearflow.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.warning("Report archive reset (all tables dropped and recreated).")


def archive_counts() -> dict[str, int]:
    """Number of stored reports and report schedules."""
    from gearflow.models.report import Report, ReportSchedule
    with get_session() as session:
        return {
            "reports": session.scalar(select(func.count()).select_from(Report)) or 0,
            "schedules": session.scalar(select(func.count()).select_from(ReportSchedule)) or 0,
        }


def reset_engine() -> None:
    """Dispose of the cached engine and session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
