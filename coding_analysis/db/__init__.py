"""Database bootstrap utilities for the coding analysis service.

This module exposes convenience imports for engine and transaction scopes and
a migrations runner that applies SQL files from the project migrations/
directory. The DB layer does not leak ORM models into route handlers.
"""

from coding_analysis.db.base import (
    dispose_engine,
    get_engine,
    read_scope,
    transaction_scope,
)
from coding_analysis.db.migrations_runner import apply_migrations

__all__ = [
    "get_engine",
    "dispose_engine",
    "read_scope",
    "transaction_scope",
    "apply_migrations",
]
