"""Coding analysis endpoints.

Implements:
- GET /workspaces/{workspace_id}/coding/response-analysis
  - Empty responses and duplicate value groups, paginated independently
- POST /workspaces/{workspace_id}/coding/apply-duplicate-aggregation
  - Applies (aggregateMode=true) or reverts (false) duplicate aggregation
- GET/PUT /workspaces/{workspace_id}/coding/response-matching-mode
  - Reads or replaces the workspace matching flags
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from coding_analysis.logic.coding_analysis_service import CodingAnalysisService, get_service
from coding_analysis.models.analysis import AggregationOutcome, AggregationRequest, AnalysisResult
from coding_analysis.models.matching import MatchingModePayload

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/workspaces/{workspace_id}/coding/response-analysis",
    response_model=AnalysisResult,
    summary="Analyze empty and duplicate responses",
)
def get_response_analysis(
    workspace_id: int,
    threshold: int = Query(2),
    empty_page: int = Query(1, alias="emptyPage"),
    empty_limit: int | None = Query(None, alias="emptyLimit"),
    duplicate_page: int = Query(1, alias="duplicatePage"),
    duplicate_limit: int | None = Query(None, alias="duplicateLimit"),
    service: CodingAnalysisService = Depends(get_service),
) -> AnalysisResult:
    return service.get_response_analysis(
        workspace_id,
        threshold=max(2, threshold),
        empty_page=empty_page,
        empty_limit=empty_limit,
        duplicate_page=duplicate_page,
        duplicate_limit=duplicate_limit,
    )


@router.post(
    "/workspaces/{workspace_id}/coding/apply-duplicate-aggregation",
    response_model=AggregationOutcome,
    summary="Apply or revert duplicate aggregation",
)
def apply_duplicate_aggregation(
    workspace_id: int,
    payload: AggregationRequest,
    service: CodingAnalysisService = Depends(get_service),
) -> AggregationOutcome:
    outcome = service.apply_duplicate_aggregation(workspace_id, payload.threshold, payload.aggregate_mode)
    if not outcome.success:
        logger.warning("aggregation.failed_outcome workspace_id=%s message=%s", workspace_id, outcome.message)
    return outcome


@router.get(
    "/workspaces/{workspace_id}/coding/response-matching-mode",
    response_model=MatchingModePayload,
    summary="Read response matching flags",
)
def get_response_matching_mode(
    workspace_id: int,
    service: CodingAnalysisService = Depends(get_service),
) -> MatchingModePayload:
    return MatchingModePayload(flags=service.get_matching_flags(workspace_id))


@router.put(
    "/workspaces/{workspace_id}/coding/response-matching-mode",
    response_model=MatchingModePayload,
    summary="Replace response matching flags",
)
def put_response_matching_mode(
    workspace_id: int,
    payload: MatchingModePayload,
    service: CodingAnalysisService = Depends(get_service),
) -> MatchingModePayload:
    return MatchingModePayload(flags=service.set_matching_flags(workspace_id, payload.flags))


__all__ = ["router"]
