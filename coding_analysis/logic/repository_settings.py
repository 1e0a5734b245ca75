"""Workspace setting data access helpers.

Settings are stored as JSON text under string keys in the `setting` table.
"""

from __future__ import annotations

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine

from coding_analysis.db.base import get_engine

MATCHING_MODE_KEY = "workspace-{workspace_id}-response-matching-mode"
AGGREGATION_THRESHOLD_KEY = "workspace-{workspace_id}-aggregation-threshold"


def get_setting(key: str, engine: Engine | None = None) -> str | None:
    eng = engine or get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text("SELECT content FROM setting WHERE key = :key"),
            {"key": key},
        ).fetchone()
    return str(row[0]) if row else None


def put_setting(key: str, content: str, engine: Engine | None = None) -> None:
    eng = engine or get_engine()
    with eng.begin() as conn:
        conn.execute(
            sql_text(
                """
                INSERT INTO setting (key, content) VALUES (:key, :content)
                ON CONFLICT (key) DO UPDATE SET content = excluded.content
                """
            ),
            {"key": key, "content": content},
        )


__all__ = [
    "MATCHING_MODE_KEY",
    "AGGREGATION_THRESHOLD_KEY",
    "get_setting",
    "put_setting",
]
