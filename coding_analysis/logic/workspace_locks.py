"""Per-workspace critical sections for aggregation apply/revert.

The registry serializes callers inside one process. Across processes the
apply and revert transactions additionally take a PostgreSQL advisory lock
keyed by workspace (see `ResponseRepository.lock_workspace`). SQLite has no
such lock; a SQLite deployment must run a single worker process.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from coding_analysis.logic import inmemory_state

logger = logging.getLogger(__name__)


class WorkspaceLockRegistry:
    def __init__(self, locks: Dict[int, threading.Lock] | None = None) -> None:
        self._locks = inmemory_state.WORKSPACE_LOCKS if locks is None else locks
        self._guard = inmemory_state.WORKSPACE_LOCKS_GUARD

    def _lock_for(self, workspace_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(workspace_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[workspace_id] = lock
            return lock

    @contextmanager
    def hold(self, workspace_id: int) -> Iterator[None]:
        lock = self._lock_for(workspace_id)
        if not lock.acquire(blocking=False):
            logger.info("workspace_lock.wait workspace_id=%s", workspace_id)
            lock.acquire()
        try:
            yield
        finally:
            lock.release()


__all__ = ["WorkspaceLockRegistry"]
