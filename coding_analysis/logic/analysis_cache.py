"""Cache of full (unpaginated) response analysis results.

Keys embed the workspace, the sorted matching flags and the effective
threshold, so one prefix delete drops every variation for a workspace.

Entries also carry the workspace data version they were computed from and
expire after `ttl_seconds`. Writes made outside this service (ingestion,
the coding workflow) change the data version, so a lookup never serves a
result computed from older rows.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Hashable, Iterable, NamedTuple

from coding_analysis.logic.cache_store import KeyValueCache
from coding_analysis.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "response-analysis"
DEFAULT_TTL_SECONDS = 300


class _Entry(NamedTuple):
    data_version: Hashable
    stored_at: float
    result: AnalysisResult


def analysis_cache_key(workspace_id: int, flags: Iterable[str], threshold: int) -> str:
    flag_part = ",".join(sorted(str(getattr(f, "value", f)) for f in flags))
    return f"{CACHE_KEY_PREFIX}:{workspace_id}_{flag_part}_t{threshold}"


class AnalysisCache:
    def __init__(
        self,
        cache: KeyValueCache | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache = cache or KeyValueCache()
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(
        self, workspace_id: int, flags: Iterable[str], threshold: int, data_version: Hashable
    ) -> AnalysisResult | None:
        if not self.enabled:
            return None
        key = analysis_cache_key(workspace_id, flags, threshold)
        entry: Any = self.cache.get(key)
        if not isinstance(entry, _Entry):
            return None
        if self.clock() - entry.stored_at >= self.ttl_seconds:
            self.cache.delete(key)
            logger.debug("cache.expired name=response_analysis key=%s", key)
            return None
        if entry.data_version != data_version:
            self.cache.delete(key)
            logger.info("cache.stale name=response_analysis workspace_id=%s", workspace_id)
            return None
        return entry.result

    def put(
        self,
        workspace_id: int,
        flags: Iterable[str],
        threshold: int,
        data_version: Hashable,
        result: AnalysisResult,
    ) -> None:
        if not self.enabled:
            return
        key = analysis_cache_key(workspace_id, flags, threshold)
        self.cache.set(key, _Entry(data_version, self.clock(), result))

    def invalidate(self, workspace_id: int) -> int:
        removed = self.cache.delete_by_prefix(f"{CACHE_KEY_PREFIX}:{workspace_id}_")
        logger.info("cache.invalidated name=response_analysis workspace_id=%s entries=%s", workspace_id, removed)
        return removed


__all__ = ["CACHE_KEY_PREFIX", "DEFAULT_TTL_SECONDS", "analysis_cache_key", "AnalysisCache"]
