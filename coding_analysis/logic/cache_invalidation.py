"""Invalidation of caches derived from response coding state.

Two downstream caches depend on which responses still need coding: the
"incomplete variables" cache and the per-round "coding statistics" cache.
Both must be dropped whenever the aggregation state of a workspace changes.
"""

from __future__ import annotations

import logging

from coding_analysis.logic.cache_store import KeyValueCache

logger = logging.getLogger(__name__)

INCOMPLETE_VARIABLES_KEY = "coding_incomplete_variables:{workspace_id}"
STATISTICS_KEY = "coding-statistics:{workspace_id}:{version}"
STATISTICS_VERSIONS = ("v1", "v2", "v3")


class CacheInvalidationNotifier:
    def __init__(self, cache: KeyValueCache | None = None) -> None:
        self.cache = cache or KeyValueCache()

    def invalidate_incomplete_variables_cache(self, workspace_id: int) -> None:
        self.cache.delete(INCOMPLETE_VARIABLES_KEY.format(workspace_id=workspace_id))
        logger.info("cache.invalidated name=incomplete_variables workspace_id=%s", workspace_id)

    def invalidate_statistics_cache(self, workspace_id: int, version: str | None = None) -> None:
        """Drop coding statistics for one round version, or all when omitted."""
        versions = (version,) if version else STATISTICS_VERSIONS
        for v in versions:
            self.cache.delete(STATISTICS_KEY.format(workspace_id=workspace_id, version=v))
        logger.info(
            "cache.invalidated name=coding_statistics workspace_id=%s versions=%s",
            workspace_id,
            ",".join(versions),
        )


__all__ = [
    "INCOMPLETE_VARIABLES_KEY",
    "STATISTICS_KEY",
    "STATISTICS_VERSIONS",
    "CacheInvalidationNotifier",
]
