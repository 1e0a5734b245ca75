"""Engine lifecycle and connection scopes.

Response data lives in PostgreSQL in production; tests and local runs use
SQLite. Queries are plain SQL text, so this module only hands out
connections and transaction boundaries.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///:memory:"

_engine: Engine | None = None
_engine_url: str | None = None


def resolve_database_url() -> str:
    return os.getenv("TEST_DATABASE_URL") or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"pool_pre_ping": True}
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return options
    options["connect_args"] = {"check_same_thread": False}
    if parsed.database in (None, "", ":memory:"):
        # One connection, otherwise every checkout sees a fresh empty database
        options["poolclass"] = StaticPool
    return options


def get_engine(url: str | None = None) -> Engine:
    """Return the process-wide Engine, rebuilding it when the URL changes."""
    global _engine, _engine_url
    target = url or resolve_database_url()
    if _engine is not None and _engine_url == target:
        return _engine
    if _engine is not None:
        logger.info("db.engine_rebuild backend=%s", make_url(target).get_backend_name())
        _engine.dispose()
    _engine = create_engine(target, **_engine_options(target))
    _engine_url = target
    return _engine


def dispose_engine() -> None:
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine, _engine_url = None, None


@contextmanager
def transaction_scope(engine: Engine | None = None) -> Iterator[Connection]:
    """Yield a connection inside one transaction.

    Commits on normal exit; rolls back and re-raises on any error.
    """
    conn = (engine or get_engine()).connect()
    trans = conn.begin()
    try:
        yield conn
        trans.commit()
    except Exception:
        trans.rollback()
        logger.error("db.transaction_rolled_back", exc_info=True)
        raise
    finally:
        conn.close()


@contextmanager
def read_scope(engine: Engine | None = None) -> Iterator[Connection]:
    with (engine or get_engine()).connect() as conn:
        yield conn


__all__ = [
    "DEFAULT_DATABASE_URL",
    "resolve_database_url",
    "get_engine",
    "dispose_engine",
    "transaction_scope",
    "read_scope",
]
