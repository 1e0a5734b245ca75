"""Immutable query specifications and the executor that runs them.

Repositories describe every read and write as a `QuerySpec` (SQL text plus
bound parameters) instead of mutating a query object in place. A
`QueryExecutor` bound to one SQLAlchemy connection runs the specs, so tests
can substitute an executor that serves fixture rows by spec name.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Tuple

from sqlalchemy import bindparam
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection, Engine

from coding_analysis.db.base import read_scope, transaction_scope


@dataclass(frozen=True)
class QuerySpec:
    name: str
    sql: str
    params: Mapping[str, Any] = field(default_factory=dict)
    # Parameters bound as expanding IN (...) lists
    expanding: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        frozen = {
            key: tuple(value) if isinstance(value, (list, set, frozenset)) else value
            for key, value in dict(self.params).items()
        }
        object.__setattr__(self, "params", MappingProxyType(frozen))

    def statement(self):  # type: ignore[no-untyped-def]
        stmt = sql_text(self.sql)
        for name in self.expanding:
            stmt = stmt.bindparams(bindparam(name, expanding=True))
        return stmt

    def bound_params(self) -> Dict[str, Any]:
        return {
            key: list(value) if key in self.expanding else value
            for key, value in self.params.items()
        }

    def with_params(self, **params: Any) -> "QuerySpec":
        merged = dict(self.params)
        merged.update(params)
        return QuerySpec(self.name, self.sql, merged, self.expanding)


class QueryExecutor:
    """Runs QuerySpecs against a single connection."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @property
    def dialect_name(self) -> str:
        return self.conn.dialect.name

    def fetch_all(self, spec: QuerySpec) -> List[Dict[str, Any]]:
        result = self.conn.execute(spec.statement(), spec.bound_params())
        return [dict(row) for row in result.mappings().all()]

    def fetch_scalar(self, spec: QuerySpec) -> Any:
        return self.conn.execute(spec.statement(), spec.bound_params()).scalar()

    def execute(self, spec: QuerySpec) -> int:
        result = self.conn.execute(spec.statement(), spec.bound_params())
        return int(result.rowcount or 0)


@contextmanager
def read_executor(engine: Engine | None = None) -> Iterator[QueryExecutor]:
    with read_scope(engine) as conn:
        yield QueryExecutor(conn)


@contextmanager
def transaction_executor(engine: Engine | None = None) -> Iterator[QueryExecutor]:
    """Yield an executor whose statements share one transaction."""
    with transaction_scope(engine) as conn:
        yield QueryExecutor(conn)


__all__ = ["QuerySpec", "QueryExecutor", "read_executor", "transaction_executor"]
