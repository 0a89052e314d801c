from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from .config import settings

logger = logging.getLogger(__name__)

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    # Visit link rows reference their visit; deletes must go links-first
    "PRAGMA foreign_keys=ON;",
    "PRAGMA busy_timeout=5000;",
)

# Live board polls every few seconds; a slow aggregate should fail, not pile up
POSTGRES_STATEMENT_TIMEOUT_MS = 30000


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}

    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        # One shared connection, otherwise each request gets its own empty DB
        kwargs["poolclass"] = StaticPool
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return kwargs


def _install_connect_hook(engine: Engine) -> None:
    backend = engine.url.get_backend_name()
    if backend == "sqlite":
        statements = SQLITE_PRAGMAS
    elif backend == "postgresql":
        statements = (f"SET statement_timeout = {POSTGRES_STATEMENT_TIMEOUT_MS};",)
    else:
        return

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ANN001
        cursor = dbapi_connection.cursor()
        for statement in statements:
            cursor.execute(statement)
        cursor.close()


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Build an engine for `database_url` (default: settings.resolved_database_url).
    File-backed SQLite gets its folder created; in-memory SQLite is pinned to
    one connection so the app and tests share the same tables.
    """
    database_url = database_url or settings.resolved_database_url
    engine = create_engine(database_url, echo=False, **_engine_kwargs(database_url))
    _install_connect_hook(engine)
    return engine


engine: Engine = get_engine()


def register_models() -> None:
    """Import every table module so SQLModel.metadata knows about them."""
    from . import models  # noqa: F401


def init_db(bind: Optional[Engine] = None) -> None:
    """Create missing tables. Existing tables are left alone."""
    register_models()
    target = bind or engine
    SQLModel.metadata.create_all(target)
    logger.info("Database ready (%s)", target.url.get_backend_name())


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI routes (Depends(get_db))."""
    with Session(engine) as session:
        yield session


@contextmanager
def session_scope(bind: Optional[Engine] = None) -> Generator[Session, None, None]:
    """Commit on success, roll back on error. For scripts."""
    session = Session(bind or engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
