"""Service facade wiring analysis, aggregation and matching settings.

Route handlers depend on this facade only; it owns the shared collaborators
(policy, caches, locks) and applies configuration defaults.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from sqlalchemy.engine import Engine

from coding_analysis.config import AppConfig, load_config
from coding_analysis.db.base import get_engine
from coding_analysis.errors import AnalysisError
from coding_analysis.logic.aggregation_executor import AggregationExecutor
from coding_analysis.logic.analysis_cache import AnalysisCache
from coding_analysis.logic.analysis_pagination import paginate_analysis
from coding_analysis.logic.cache_invalidation import CacheInvalidationNotifier
from coding_analysis.logic.matching_policy import MatchingPolicyProvider
from coding_analysis.logic.query_spec import read_executor, transaction_executor
from coding_analysis.logic.response_analyzer import ResponseAnalyzer, effective_threshold
from coding_analysis.models.analysis import AggregationOutcome, AnalysisResult
from coding_analysis.models.matching import ResponseMatchingFlag

logger = logging.getLogger(__name__)


class CodingAnalysisService:
    def __init__(self, config: AppConfig | None = None, engine: Engine | None = None) -> None:
        self.config = config or load_config()
        self.policy = MatchingPolicyProvider(engine)
        self.analysis_cache = AnalysisCache(ttl_seconds=self.config.analysis.cache_ttl_seconds)
        self.notifier = CacheInvalidationNotifier()
        self.analyzer = ResponseAnalyzer(self.policy, lambda: read_executor(engine))
        self.executor = AggregationExecutor(
            policy=self.policy,
            analyzer=self.analyzer,
            notifier=self.notifier,
            analysis_cache=self.analysis_cache,
            transaction=lambda: transaction_executor(engine),
            chunk_size=self.config.aggregation.write_chunk_size,
        )

    def get_response_analysis(
        self,
        workspace_id: int,
        threshold: int | None = None,
        empty_page: int | None = 1,
        empty_limit: int | None = None,
        duplicate_page: int | None = 1,
        duplicate_limit: int | None = None,
    ) -> AnalysisResult:
        requested = threshold if threshold is not None else self.config.aggregation.default_threshold
        try:
            flags = self.policy.get_matching_flags(workspace_id)
        except Exception as exc:
            logger.error("response_analysis.flags_failed workspace_id=%s", workspace_id, exc_info=True)
            raise AnalysisError(f"Failed to analyze responses: {exc}") from exc
        eff = effective_threshold(requested, flags)

        version = self.analyzer.data_version(workspace_id) if self.analysis_cache.enabled else None
        full = self.analysis_cache.get(workspace_id, flags, eff, version)
        if full is None:
            full = self.analyzer.analyze(workspace_id, eff)
            self.analysis_cache.put(workspace_id, flags, eff, version, full)
        else:
            logger.info("response_analysis.cache_hit workspace_id=%s threshold=%s", workspace_id, eff)

        return paginate_analysis(
            full,
            empty_page=empty_page,
            empty_limit=empty_limit,
            duplicate_page=duplicate_page,
            duplicate_limit=duplicate_limit,
            default_limit=self.config.analysis.page_size,
        )

    def apply_duplicate_aggregation(self, workspace_id: int, threshold: int, aggregate_mode: bool) -> AggregationOutcome:
        return self.executor.apply_or_revert(workspace_id, threshold, aggregate_mode)

    def get_matching_flags(self, workspace_id: int) -> List[ResponseMatchingFlag]:
        return self.policy.get_matching_flags(workspace_id)

    def set_matching_flags(self, workspace_id: int, flags: Iterable[ResponseMatchingFlag]) -> List[ResponseMatchingFlag]:
        saved = self.policy.set_matching_flags(workspace_id, flags)
        self.analysis_cache.invalidate(workspace_id)
        return saved


_SERVICE: CodingAnalysisService | None = None


def get_service() -> CodingAnalysisService:
    """FastAPI dependency returning the process-wide service."""
    global _SERVICE
    if _SERVICE is None:
        config = load_config()
        _SERVICE = CodingAnalysisService(config, get_engine(config.database.dsn))
    return _SERVICE


def reset_service() -> None:
    global _SERVICE
    _SERVICE = None


__all__ = ["CodingAnalysisService", "get_service", "reset_service"]
