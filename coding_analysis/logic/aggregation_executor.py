"""Apply and revert duplicate-value aggregation.

Apply keeps the canonical occurrence (position 0, lowest response id) of every
duplicate group whose size reaches the threshold and sets the round-1 status
of all other occurrences to the aggregated marker, saving the status each
row held before. Revert puts that saved status back on every marked row of
the workspace, regardless of which apply produced it. Rows already marked
are excluded from grouping, so a repeated apply only marks new duplicates.

Each call runs inside the workspace critical section and one transaction
(on PostgreSQL the transaction also takes a workspace advisory lock);
writes are chunked on the same connection, so a failure leaves no marker
from that call behind.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Sequence

from sqlalchemy.exc import SQLAlchemyError

from coding_analysis.errors import AggregationError, AnalysisError, AppError
from coding_analysis.logic.analysis_cache import AnalysisCache
from coding_analysis.logic.cache_invalidation import CacheInvalidationNotifier
from coding_analysis.logic.events import AGGREGATION_APPLIED, AGGREGATION_REVERTED, publish
from coding_analysis.logic.matching_policy import MatchingPolicyProvider
from coding_analysis.logic.query_spec import transaction_executor
from coding_analysis.logic.repository_responses import ResponseRepository
from coding_analysis.logic.response_analyzer import (
    MIN_GROUP_SIZE,
    ExecutorScope,
    ResponseAnalyzer,
)
from coding_analysis.logic.workspace_locks import WorkspaceLockRegistry
from coding_analysis.models.analysis import AggregationOutcome, DuplicateGroup

logger = logging.getLogger(__name__)

THRESHOLD_TOO_LOW_MESSAGE = "Threshold must be at least 2"
DEFAULT_CHUNK_SIZE = 1000


def non_canonical_ids(groups: Sequence[DuplicateGroup]) -> List[int]:
    """Response ids to mark, in group order, skipping each canonical occurrence."""
    ids: List[int] = []
    for group in groups:
        ids.extend(o.response_id for o in group.occurrences[1:])
    return ids


class AggregationExecutor:
    def __init__(
        self,
        policy: MatchingPolicyProvider | None = None,
        analyzer: ResponseAnalyzer | None = None,
        notifier: CacheInvalidationNotifier | None = None,
        analysis_cache: AnalysisCache | None = None,
        locks: WorkspaceLockRegistry | None = None,
        transaction: ExecutorScope = transaction_executor,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.policy = policy or MatchingPolicyProvider()
        self.analyzer = analyzer or ResponseAnalyzer(self.policy)
        self.notifier = notifier or CacheInvalidationNotifier()
        self.analysis_cache = analysis_cache or AnalysisCache()
        self.locks = locks or WorkspaceLockRegistry()
        self.transaction = transaction
        self.chunk_size = chunk_size

    def apply_or_revert(self, workspace_id: int, threshold: int, aggregate: bool) -> AggregationOutcome:
        logger.info(
            "aggregation.request workspace_id=%s threshold=%s aggregate=%s",
            workspace_id,
            threshold,
            aggregate,
        )
        if not aggregate:
            return self.revert(workspace_id)
        if threshold < MIN_GROUP_SIZE:
            return AggregationOutcome(success=False, message=THRESHOLD_TOO_LOW_MESSAGE)
        return self.apply(workspace_id, threshold)

    def apply(self, workspace_id: int, threshold: int) -> AggregationOutcome:
        with self.locks.hold(workspace_id):
            try:
                with self.transaction() as executor:
                    repo = ResponseRepository(executor)
                    self._lock_workspace(repo, workspace_id)
                    groups = self._duplicate_groups(repo, workspace_id)
                    total_responses = sum(len(g.occurrences) for g in groups)
                    qualifying = [g for g in groups if len(g.occurrences) >= threshold]
                    if not qualifying:
                        return AggregationOutcome(
                            success=True,
                            unique_coding_cases=total_responses,
                            message=f"No duplicate groups meet the threshold of {threshold}",
                        )
                    logger.info(
                        "aggregation.groups_qualifying workspace_id=%s groups=%s threshold=%s",
                        workspace_id,
                        len(qualifying),
                        threshold,
                    )
                    marked = self._mark(repo, qualifying)
            except (AppError, SQLAlchemyError) as exc:
                logger.error("aggregation.apply_failed workspace_id=%s", workspace_id, exc_info=True)
                return AggregationOutcome(success=False, message=f"Error: {exc}")

            self.policy.set_aggregation_threshold(workspace_id, threshold)
            self._invalidate(workspace_id)

        message = f"Successfully aggregated {marked} responses in {len(qualifying)} groups"
        logger.info("aggregation.applied workspace_id=%s responses=%s groups=%s", workspace_id, marked, len(qualifying))
        publish(
            AGGREGATION_APPLIED,
            {
                "workspace_id": workspace_id,
                "threshold": threshold,
                "aggregated_groups": len(qualifying),
                "aggregated_responses": marked,
            },
        )
        return AggregationOutcome(
            success=True,
            aggregated_groups=len(qualifying),
            aggregated_responses=marked,
            unique_coding_cases=total_responses - marked,
            message=message,
        )

    def revert(self, workspace_id: int) -> AggregationOutcome:
        logger.info("aggregation.revert workspace_id=%s", workspace_id)
        with self.locks.hold(workspace_id):
            try:
                with self.transaction() as executor:
                    repo = ResponseRepository(executor)
                    self._lock_workspace(repo, workspace_id)
                    ids = repo.list_aggregated_ids(workspace_id)
                    if ids:
                        self._write_status(repo.restore_pre_aggregation, ids, "revert")
            except (AppError, SQLAlchemyError) as exc:
                logger.error("aggregation.revert_failed workspace_id=%s", workspace_id, exc_info=True)
                return AggregationOutcome(success=False, message=f"Error: {exc}")

            if not ids:
                return AggregationOutcome(
                    success=True,
                    message="Aggregation deactivated. No aggregated responses found to revert.",
                )
            self._invalidate(workspace_id)

        publish(AGGREGATION_REVERTED, {"workspace_id": workspace_id, "reverted_responses": len(ids)})
        return AggregationOutcome(
            success=True,
            aggregated_responses=len(ids),
            message=f"Aggregation deactivated. Reverted {len(ids)} aggregated responses.",
        )

    def _duplicate_groups(self, repo: ResponseRepository, workspace_id: int) -> List[DuplicateGroup]:
        try:
            flags = self.policy.get_matching_flags(workspace_id)
            findings = self.analyzer.collect(repo, workspace_id, flags, MIN_GROUP_SIZE)
        except Exception as exc:
            raise AnalysisError(f"Failed to analyze responses: {exc}") from exc
        return findings.duplicate_groups if findings else []

    def _mark(self, repo: ResponseRepository, groups: Sequence[DuplicateGroup]) -> int:
        for group in groups:
            logger.debug(
                "aggregation.group unit=%s variable=%s value=%s canonical=%s aggregating=%s",
                group.unit_name,
                group.variable_id,
                group.normalized_value,
                group.occurrences[0].response_id,
                len(group.occurrences) - 1,
            )
        ids = non_canonical_ids(groups)
        self._write_status(repo.mark_aggregated, ids, "aggregate")
        return len(ids)

    def _write_status(self, write: Callable[[Sequence[int], int], int], ids: Sequence[int], action: str) -> None:
        try:
            updated = write(ids, self.chunk_size)
        except Exception as exc:
            raise AggregationError(f"Failed to {action} duplicate responses: {exc}") from exc
        if updated != len(ids):
            logger.warning("aggregation.rowcount_mismatch action=%s expected=%s updated=%s", action, len(ids), updated)

    def _lock_workspace(self, repo: ResponseRepository, workspace_id: int) -> None:
        if repo.lock_workspace(workspace_id):
            logger.debug("aggregation.advisory_lock workspace_id=%s", workspace_id)

    def _invalidate(self, workspace_id: int) -> None:
        self.analysis_cache.invalidate(workspace_id)
        self.notifier.invalidate_incomplete_variables_cache(workspace_id)
        self.notifier.invalidate_statistics_cache(workspace_id)


__all__ = [
    "THRESHOLD_TOO_LOW_MESSAGE",
    "DEFAULT_CHUNK_SIZE",
    "non_canonical_ids",
    "AggregationExecutor",
]
