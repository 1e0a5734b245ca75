"""Central in-process state holders.

Defines the single source of truth for ephemeral state shared across
requests: the key/value cache backing the analysis, incomplete-variables and
coding-statistics caches, and the per-workspace aggregation locks.
"""

from __future__ import annotations

import threading
from typing import Any, Dict

# Cache store: cache key -> cached value
CACHE_STORE: Dict[str, Any] = {}
CACHE_LOCK = threading.Lock()

# Aggregation critical sections: workspace_id -> lock
WORKSPACE_LOCKS: Dict[int, threading.Lock] = {}
WORKSPACE_LOCKS_GUARD = threading.Lock()


def reset_state() -> None:
    """Clear caches and forget idle workspace locks (test/dev only)."""
    with CACHE_LOCK:
        CACHE_STORE.clear()
    with WORKSPACE_LOCKS_GUARD:
        for key in [k for k, lock in WORKSPACE_LOCKS.items() if not lock.locked()]:
            del WORKSPACE_LOCKS[key]


__all__ = [
    "CACHE_STORE",
    "CACHE_LOCK",
    "WORKSPACE_LOCKS",
    "WORKSPACE_LOCKS_GUARD",
    "reset_state",
]
