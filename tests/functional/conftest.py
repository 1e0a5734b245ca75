from __future__ import annotations

"""Functional test bootstrap for the coding analysis service.

Points the service at a file-backed SQLite database before any application
module is imported, applies the project migrations once per session and
wipes tables plus in-process state between tests.
"""

import os
import pathlib
from dataclasses import dataclass, field
from typing import Dict, Optional

import pytest

_ROOT = pathlib.Path(__file__).resolve().parents[2]
_DB_FILE = _ROOT / "tmp" / "functional_tests.db"
_DB_FILE.parent.mkdir(parents=True, exist_ok=True)
if _DB_FILE.exists():
    _DB_FILE.unlink()

# Use a file-backed SQLite DB to ensure persistence across connections
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
# Disable app startup auto-migrations; the session fixture applies them
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"

_TABLES = ("response", "unit", "booklet", "bookletinfo", "persons", "setting")


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap():
    """Session-level bootstrap: apply migrations once for the shared DB."""
    from coding_analysis.db.base import get_engine
    from coding_analysis.db.migrations_runner import apply_migrations

    apply_migrations(get_engine(os.environ["TEST_DATABASE_URL"]))
    yield


@pytest.fixture()
def engine():
    from coding_analysis.db.base import get_engine

    return get_engine(os.environ["TEST_DATABASE_URL"])


@pytest.fixture(autouse=True)
def clean_state(engine):
    """Empty every table and reset caches, locks, events and the service."""
    from sqlalchemy import text

    from coding_analysis.logic import inmemory_state
    from coding_analysis.logic.events import clear_events
    from coding_analysis.logic.coding_analysis_service import reset_service

    with engine.begin() as conn:
        for table in _TABLES:
            conn.execute(text(f"DELETE FROM {table}"))
    inmemory_state.reset_state()
    clear_events()
    reset_service()
    yield


@dataclass
class Seeder:
    """Inserts the person -> booklet -> unit -> response graph used by tests."""

    engine: object
    _booklet_infos: Dict[str, int] = field(default_factory=dict)

    def _insert(self, sql: str, params: dict) -> int:
        from sqlalchemy import text

        with self.engine.begin() as conn:
            result = conn.execute(text(sql), params)
            return int(result.lastrowid)

    def person(self, workspace_id: int, login: str, code: str = "", group: str = "", consider: bool = True) -> int:
        return self._insert(
            'INSERT INTO persons (login, code, "group", workspace_id, consider) '
            "VALUES (:login, :code, :grp, :ws, :consider)",
            {"login": login, "code": code, "grp": group, "ws": workspace_id, "consider": consider},
        )

    def booklet(self, person_id: int, name: str = "BOOKLET-1") -> int:
        info_id = self._booklet_infos.get(name)
        if info_id is None:
            info_id = self._insert("INSERT INTO bookletinfo (name) VALUES (:name)", {"name": name})
            self._booklet_infos[name] = info_id
        return self._insert(
            "INSERT INTO booklet (personid, infoid) VALUES (:pid, :info)",
            {"pid": person_id, "info": info_id},
        )

    def unit(self, booklet_id: int, name: str = "UNIT-1", alias: Optional[str] = None) -> int:
        return self._insert(
            "INSERT INTO unit (bookletid, name, alias) VALUES (:bid, :name, :alias)",
            {"bid": booklet_id, "name": name, "alias": alias},
        )

    def response(
        self,
        unit_id: int,
        variable_id: str,
        value: Optional[str],
        status_v1: Optional[int] = None,
        status_v2: Optional[int] = None,
    ) -> int:
        return self._insert(
            "INSERT INTO response (unitid, variableid, value, status_v1, status_v2) "
            "VALUES (:uid, :var, :value, :s1, :s2)",
            {"uid": unit_id, "var": variable_id, "value": value, "s1": status_v1, "s2": status_v2},
        )

    def status_v1(self, response_id: int) -> Optional[int]:
        from sqlalchemy import text

        with self.engine.connect() as conn:
            return conn.execute(
                text("SELECT status_v1 FROM response WHERE id = :id"), {"id": response_id}
            ).scalar()

    def code_round2(self, response_id: int, status: int) -> None:
        """Set status_v2 the way the coding workflow does, outside this service."""
        from sqlalchemy import text

        with self.engine.begin() as conn:
            conn.execute(
                text("UPDATE response SET status_v2 = :status WHERE id = :id"),
                {"status": status, "id": response_id},
            )


@pytest.fixture()
def seed(engine) -> Seeder:
    return Seeder(engine)


@pytest.fixture()
def make_unit(seed):
    """Factory: a considered person with one booklet and one unit; returns the unit id."""

    def _make(workspace_id: int = 1, login: str = "taker-1", unit_name: str = "UNIT-1") -> int:
        person_id = seed.person(workspace_id, login, code=f"{login}-code", group="g1")
        booklet_id = seed.booklet(person_id)
        return seed.unit(booklet_id, unit_name, alias=f"{unit_name}-alias")

    return _make
