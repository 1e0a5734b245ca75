"""Empty-response and duplicate-value analysis for a workspace.

Walks persons -> booklets -> units -> responses for the considered persons of
a workspace and partitions the responses of every candidate unit/variable
scope into:

- empty responses: value is null, blank or the empty-array marker, and
  round-2 coding has not been recorded yet;
- duplicate groups: two or more non-empty responses of one scope whose
  values normalize to the same string under the workspace matching flags.

Occurrences keep the query order (ascending response id), so position 0 of
every group is its canonical occurrence.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Sequence, Tuple

from coding_analysis.errors import AnalysisError
from coding_analysis.logic.matching_policy import MatchingPolicyProvider
from coding_analysis.logic.query_spec import QueryExecutor, read_executor
from coding_analysis.logic.repository_responses import ResponseRepository
from coding_analysis.logic.timestamps import format_timestamp
from coding_analysis.models.analysis import (
    AnalysisResult,
    DuplicateGroup,
    DuplicateOccurrence,
    DuplicateValueAnalysis,
    EmptyResponseAnalysis,
    EmptyResponseItem,
)
from coding_analysis.models.matching import ResponseMatchingFlag

logger = logging.getLogger(__name__)

EMPTY_ARRAY_MARKER = "[]"
MIN_GROUP_SIZE = 2

ExecutorScope = Callable[[], AbstractContextManager[QueryExecutor]]


class ScopeValueKey(NamedTuple):
    unit_id: int
    variable_id: str
    normalized_value: str


@dataclass
class ScopeFindings:
    empty_responses: List[EmptyResponseItem] = field(default_factory=list)
    duplicate_groups: List[DuplicateGroup] = field(default_factory=list)


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    text = str(value)
    return text.strip() == "" or text == EMPTY_ARRAY_MARKER


def effective_threshold(threshold: int, flags: Iterable[ResponseMatchingFlag]) -> int:
    """Minimum group size reported by an analysis.

    With NO_AGGREGATION every duplicate is shown regardless of the request.
    """
    if ResponseMatchingFlag.NO_AGGREGATION in set(flags):
        return MIN_GROUP_SIZE
    return max(MIN_GROUP_SIZE, int(threshold))


def _flag_values(flags: Iterable[ResponseMatchingFlag]) -> List[str]:
    return [str(getattr(f, "value", f)) for f in flags]


def empty_analysis_result(flags: Sequence[ResponseMatchingFlag]) -> AnalysisResult:
    return AnalysisResult(
        empty_responses=EmptyResponseAnalysis(total=0, items=[]),
        duplicate_values=DuplicateValueAnalysis(
            total=0, total_responses=0, groups=[], is_aggregation_applied=False
        ),
        matching_flags=_flag_values(flags),
        analysis_timestamp=format_timestamp(),
    )


def build_analysis_result(
    flags: Sequence[ResponseMatchingFlag],
    findings: ScopeFindings,
    is_aggregation_applied: bool,
) -> AnalysisResult:
    groups = findings.duplicate_groups
    return AnalysisResult(
        empty_responses=EmptyResponseAnalysis(
            total=len(findings.empty_responses), items=list(findings.empty_responses)
        ),
        duplicate_values=DuplicateValueAnalysis(
            total=len(groups),
            total_responses=sum(len(g.occurrences) for g in groups),
            groups=list(groups),
            is_aggregation_applied=is_aggregation_applied,
        ),
        matching_flags=_flag_values(flags),
        analysis_timestamp=format_timestamp(),
    )


def _empty_item(row: Dict[str, Any]) -> EmptyResponseItem:
    return EmptyResponseItem(
        response_id=int(row["response_id"]),
        unit_name=row.get("unit_name") or "",
        unit_alias=row.get("unit_alias"),
        variable_id=str(row["variable_id"]),
        person_login=row.get("person_login") or "",
        person_code=row.get("person_code") or "",
        person_group=row.get("person_group") or "",
        booklet_name=row.get("booklet_name") or "Unknown",
        value=row.get("value"),
    )


def _occurrence(row: Dict[str, Any]) -> DuplicateOccurrence:
    return DuplicateOccurrence(
        response_id=int(row["response_id"]),
        value=row.get("value") or "",
        person_login=row.get("person_login") or "Unknown",
        person_code=row.get("person_code") or "",
        booklet_name=row.get("booklet_name") or "Unknown",
    )


class ResponseAnalyzer:
    def __init__(
        self,
        policy: MatchingPolicyProvider | None = None,
        executor_scope: ExecutorScope = read_executor,
    ) -> None:
        self.policy = policy or MatchingPolicyProvider()
        self.executor_scope = executor_scope

    def analyze(self, workspace_id: int, threshold: int = MIN_GROUP_SIZE) -> AnalysisResult:
        """Return the empty/duplicate report for a workspace.

        Any collaborator or query failure is raised as AnalysisError; partial
        results are never returned.
        """
        logger.info("response_analysis.start workspace_id=%s threshold=%s", workspace_id, threshold)
        try:
            flags = self.policy.get_matching_flags(workspace_id)
            with self.executor_scope() as executor:
                repo = ResponseRepository(executor)
                findings = self.collect(repo, workspace_id, flags, effective_threshold(threshold, flags))
                if findings is None:
                    return empty_analysis_result(flags)
                applied = repo.count_aggregated(workspace_id) > 0
        except Exception as exc:
            logger.error("response_analysis.failed workspace_id=%s", workspace_id, exc_info=True)
            raise AnalysisError(f"Failed to analyze responses: {exc}") from exc

        result = build_analysis_result(flags, findings, applied)
        logger.info(
            "response_analysis.done workspace_id=%s empty=%s groups=%s aggregated=%s",
            workspace_id,
            result.empty_responses.total,
            result.duplicate_values.total,
            applied,
        )
        return result

    def data_version(self, workspace_id: int) -> Tuple[Any, ...]:
        """Fingerprint of the workspace's responses, used to validate cached results."""
        try:
            with self.executor_scope() as executor:
                return ResponseRepository(executor).data_version(workspace_id)
        except Exception as exc:
            raise AnalysisError(f"Failed to analyze responses: {exc}") from exc

    def collect(
        self,
        repo: ResponseRepository,
        workspace_id: int,
        flags: Sequence[ResponseMatchingFlag],
        threshold: int = MIN_GROUP_SIZE,
    ) -> ScopeFindings | None:
        """Run the grouping phase; None when the workspace has nothing in scope."""
        person_ids = repo.list_considered_person_ids(workspace_id)
        if not person_ids:
            return None
        booklet_ids = repo.list_booklet_ids(person_ids)
        if not booklet_ids:
            return None
        units = repo.list_units(booklet_ids)
        if not units:
            return None

        findings = ScopeFindings()
        scopes = repo.list_candidate_scopes([int(u["id"]) for u in units])
        logger.debug("response_analysis.scopes workspace_id=%s count=%s", workspace_id, len(scopes))
        for unit_id, variable_id in scopes:
            rows = repo.list_scope_responses(unit_id, variable_id)
            self._classify(rows, flags, threshold, findings)
        return findings

    def _classify(
        self,
        rows: List[Dict[str, Any]],
        flags: Sequence[ResponseMatchingFlag],
        threshold: int,
        findings: ScopeFindings,
    ) -> None:
        buckets: Dict[ScopeValueKey, List[Dict[str, Any]]] = {}
        for row in rows:
            # Responses detached from a booklet/person are out of scope
            if row.get("person_id") is None:
                continue
            value = row.get("value")
            if is_empty_value(value):
                if row.get("status_v2") is None:
                    findings.empty_responses.append(_empty_item(row))
                continue
            key = ScopeValueKey(
                int(row["unit_id"]),
                str(row["variable_id"]),
                self.policy.normalize(value, flags),
            )
            buckets.setdefault(key, []).append(row)

        for key, members in buckets.items():
            if len(members) < max(MIN_GROUP_SIZE, threshold):
                continue
            first = members[0]
            findings.duplicate_groups.append(
                DuplicateGroup(
                    unit_id=key.unit_id,
                    unit_name=first.get("unit_name") or "",
                    unit_alias=first.get("unit_alias"),
                    variable_id=key.variable_id,
                    normalized_value=key.normalized_value,
                    original_value=first.get("value") or "",
                    occurrences=[_occurrence(r) for r in members],
                )
            )


__all__ = [
    "EMPTY_ARRAY_MARKER",
    "MIN_GROUP_SIZE",
    "ScopeValueKey",
    "ScopeFindings",
    "is_empty_value",
    "effective_threshold",
    "empty_analysis_result",
    "build_analysis_result",
    "ResponseAnalyzer",
]
