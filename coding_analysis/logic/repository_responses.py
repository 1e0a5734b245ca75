"""Response-related data access for analysis and aggregation.

Each read and write is exposed twice: as a `*_spec` builder returning an
immutable QuerySpec, and as a `ResponseRepository` method that runs the spec
through a QueryExecutor and shapes the rows.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

from coding_analysis.logic.query_spec import QueryExecutor, QuerySpec
from coding_analysis.models.response_status import AGGREGATED_MARKER

# Offset keeping workspace advisory lock keys apart from other pg_advisory users
ADVISORY_LOCK_NAMESPACE = 0x5EED_0000_0000

# Joins a response row to the workspace that owns it
_WORKSPACE_JOIN = """
    FROM response r
    JOIN unit u ON u.id = r.unitid
    JOIN booklet b ON b.id = u.bookletid
    JOIN persons p ON p.id = b.personid
    WHERE p.workspace_id = :workspace_id
"""


def considered_persons_spec(workspace_id: int) -> QuerySpec:
    return QuerySpec(
        "considered_persons",
        "SELECT id FROM persons WHERE workspace_id = :workspace_id AND consider = :consider ORDER BY id ASC",
        {"workspace_id": workspace_id, "consider": True},
    )


def booklets_for_persons_spec(person_ids: Sequence[int]) -> QuerySpec:
    return QuerySpec(
        "booklets_for_persons",
        "SELECT id, personid FROM booklet WHERE personid IN :person_ids ORDER BY id ASC",
        {"person_ids": list(person_ids)},
        expanding=("person_ids",),
    )


def units_for_booklets_spec(booklet_ids: Sequence[int]) -> QuerySpec:
    return QuerySpec(
        "units_for_booklets",
        "SELECT id, bookletid, name, alias FROM unit WHERE bookletid IN :booklet_ids ORDER BY id ASC",
        {"booklet_ids": list(booklet_ids)},
        expanding=("booklet_ids",),
    )


# Rows already collapsed into a canonical occurrence take no further part in grouping
_NOT_AGGREGATED = "(r.status_v1 IS NULL OR r.status_v1 <> :marker)"


def candidate_scopes_spec(unit_ids: Sequence[int]) -> QuerySpec:
    """Unit/variable pairs holding more than one unaggregated response."""
    return QuerySpec(
        "candidate_scopes",
        f"""
        SELECT r.unitid AS unit_id, r.variableid AS variable_id
        FROM response r
        WHERE r.unitid IN :unit_ids AND {_NOT_AGGREGATED}
        GROUP BY r.unitid, r.variableid
        HAVING COUNT(*) > 1
        ORDER BY r.unitid ASC, r.variableid ASC
        """,
        {"unit_ids": list(unit_ids), "marker": AGGREGATED_MARKER},
        expanding=("unit_ids",),
    )


def responses_for_scope_spec(unit_id: int, variable_id: str) -> QuerySpec:
    """Unaggregated responses of one scope ordered by id; position 0 is the canonical occurrence."""
    return QuerySpec(
        "responses_for_scope",
        f"""
        SELECT r.id AS response_id,
               r.unitid AS unit_id,
               r.variableid AS variable_id,
               r.value AS value,
               r.status_v1 AS status_v1,
               r.status_v2 AS status_v2,
               u.name AS unit_name,
               u.alias AS unit_alias,
               p.id AS person_id,
               p.login AS person_login,
               p.code AS person_code,
               p."group" AS person_group,
               bi.name AS booklet_name
        FROM response r
        JOIN unit u ON u.id = r.unitid
        LEFT JOIN booklet b ON b.id = u.bookletid
        LEFT JOIN persons p ON p.id = b.personid
        LEFT JOIN bookletinfo bi ON bi.id = b.infoid
        WHERE r.unitid = :unit_id AND r.variableid = :variable_id AND {_NOT_AGGREGATED}
        ORDER BY r.id ASC
        """,
        {"unit_id": unit_id, "variable_id": variable_id, "marker": AGGREGATED_MARKER},
    )


def aggregated_count_spec(workspace_id: int) -> QuerySpec:
    return QuerySpec(
        "aggregated_count",
        "SELECT COUNT(*) " + _WORKSPACE_JOIN + " AND r.status_v1 = :marker",
        {"workspace_id": workspace_id, "marker": AGGREGATED_MARKER},
    )


def aggregated_ids_spec(workspace_id: int) -> QuerySpec:
    return QuerySpec(
        "aggregated_ids",
        "SELECT r.id AS id " + _WORKSPACE_JOIN + " AND r.status_v1 = :marker ORDER BY r.id ASC",
        {"workspace_id": workspace_id, "marker": AGGREGATED_MARKER},
    )


def data_version_spec(workspace_id: int) -> QuerySpec:
    """Aggregate fingerprint of the workspace's responses and coding state."""
    return QuerySpec(
        "data_version",
        """
        SELECT COUNT(r.id) AS responses,
               COALESCE(MAX(r.id), 0) AS max_response_id,
               COUNT(r.status_v2) AS round2_coded,
               COALESCE(SUM(r.status_v2), 0) AS round2_sum,
               COALESCE(SUM(r.status_v1), 0) AS round1_sum,
               COALESCE(SUM(LENGTH(r.value)), 0) AS value_length,
               COALESCE(SUM(CASE WHEN p.consider THEN 1 ELSE 0 END), 0) AS considered
        """ + _WORKSPACE_JOIN,
        {"workspace_id": workspace_id},
    )


def mark_aggregated_spec(response_ids: Sequence[int]) -> QuerySpec:
    """Save the current round-1 status, then set the aggregated marker."""
    return QuerySpec(
        "mark_aggregated",
        """
        UPDATE response
        SET status_v1_pre_aggregation = status_v1, status_v1 = :marker
        WHERE id IN :response_ids AND (status_v1 IS NULL OR status_v1 <> :marker)
        """,
        {"marker": AGGREGATED_MARKER, "response_ids": list(response_ids)},
        expanding=("response_ids",),
    )


def restore_pre_aggregation_spec(response_ids: Sequence[int]) -> QuerySpec:
    """Put back the saved round-1 status of marked rows and clear the saved copy."""
    return QuerySpec(
        "restore_pre_aggregation",
        """
        UPDATE response
        SET status_v1 = status_v1_pre_aggregation, status_v1_pre_aggregation = NULL
        WHERE id IN :response_ids AND status_v1 = :marker
        """,
        {"marker": AGGREGATED_MARKER, "response_ids": list(response_ids)},
        expanding=("response_ids",),
    )


def workspace_advisory_lock_spec(workspace_id: int) -> QuerySpec:
    """PostgreSQL transaction-scoped lock; released on commit or rollback."""
    return QuerySpec(
        "workspace_advisory_lock",
        "SELECT pg_advisory_xact_lock(:lock_key)",
        {"lock_key": ADVISORY_LOCK_NAMESPACE + int(workspace_id)},
    )


def _chunks(ids: Sequence[int], size: int) -> Iterable[Sequence[int]]:
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class ResponseRepository:
    """Scoped reads and writes over the response graph of a workspace."""

    def __init__(self, executor: QueryExecutor) -> None:
        self.executor = executor

    def list_considered_person_ids(self, workspace_id: int) -> List[int]:
        rows = self.executor.fetch_all(considered_persons_spec(workspace_id))
        return [int(r["id"]) for r in rows]

    def list_booklet_ids(self, person_ids: Sequence[int]) -> List[int]:
        if not person_ids:
            return []
        rows = self.executor.fetch_all(booklets_for_persons_spec(person_ids))
        return [int(r["id"]) for r in rows]

    def list_units(self, booklet_ids: Sequence[int]) -> List[Dict[str, Any]]:
        if not booklet_ids:
            return []
        return self.executor.fetch_all(units_for_booklets_spec(booklet_ids))

    def list_candidate_scopes(self, unit_ids: Sequence[int]) -> List[Tuple[int, str]]:
        if not unit_ids:
            return []
        rows = self.executor.fetch_all(candidate_scopes_spec(unit_ids))
        return [(int(r["unit_id"]), str(r["variable_id"])) for r in rows]

    def list_scope_responses(self, unit_id: int, variable_id: str) -> List[Dict[str, Any]]:
        return self.executor.fetch_all(responses_for_scope_spec(unit_id, variable_id))

    def count_aggregated(self, workspace_id: int) -> int:
        return int(self.executor.fetch_scalar(aggregated_count_spec(workspace_id)) or 0)

    def list_aggregated_ids(self, workspace_id: int) -> List[int]:
        rows = self.executor.fetch_all(aggregated_ids_spec(workspace_id))
        return [int(r["id"]) for r in rows]

    def data_version(self, workspace_id: int) -> Tuple[Any, ...]:
        rows = self.executor.fetch_all(data_version_spec(workspace_id))
        return tuple(rows[0].values()) if rows else ()

    def lock_workspace(self, workspace_id: int) -> bool:
        """Take the cross-process workspace lock where the backend has one."""
        if getattr(self.executor, "dialect_name", None) != "postgresql":
            return False
        self.executor.fetch_scalar(workspace_advisory_lock_spec(workspace_id))
        return True

    def mark_aggregated(self, response_ids: Sequence[int], chunk_size: int = 1000) -> int:
        """Mark rows in chunks on the current connection; returns rows changed.

        Chunking never commits; the caller's transaction spans every chunk.
        """
        return self._run_chunked(mark_aggregated_spec, response_ids, chunk_size)

    def restore_pre_aggregation(self, response_ids: Sequence[int], chunk_size: int = 1000) -> int:
        return self._run_chunked(restore_pre_aggregation_spec, response_ids, chunk_size)

    def _run_chunked(
        self, build: Callable[[Sequence[int]], QuerySpec], response_ids: Sequence[int], chunk_size: int
    ) -> int:
        updated = 0
        for chunk in _chunks(list(response_ids), max(1, int(chunk_size))):
            updated += self.executor.execute(build(chunk))
        return updated


__all__ = [
    "ADVISORY_LOCK_NAMESPACE",
    "considered_persons_spec",
    "booklets_for_persons_spec",
    "units_for_booklets_spec",
    "candidate_scopes_spec",
    "responses_for_scope_spec",
    "aggregated_count_spec",
    "aggregated_ids_spec",
    "data_version_spec",
    "mark_aggregated_spec",
    "restore_pre_aggregation_spec",
    "workspace_advisory_lock_spec",
    "ResponseRepository",
]
