"""Thread-safe key/value cache over the shared in-process store."""

from __future__ import annotations

import logging
from typing import Any, Dict

from coding_analysis.logic import inmemory_state

logger = logging.getLogger(__name__)


class KeyValueCache:
    def __init__(self, store: Dict[str, Any] | None = None) -> None:
        self._store = inmemory_state.CACHE_STORE if store is None else store
        self._lock = inmemory_state.CACHE_LOCK

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._store.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._store[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def delete_by_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._store if k.startswith(prefix)]
            for k in doomed:
                del self._store[k]
        logger.debug("cache.delete_by_prefix prefix=%s removed=%s", prefix, len(doomed))
        return len(doomed)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._store)


__all__ = ["KeyValueCache"]
