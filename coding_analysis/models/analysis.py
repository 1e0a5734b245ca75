"""Pydantic models for response analysis and aggregation bodies.

Field names are snake_case in Python and serialised in camelCase, matching
the contract consumed by the coding management frontend.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmptyResponseItem(_CamelModel):
    response_id: int
    unit_name: str
    unit_alias: str | None = None
    variable_id: str
    person_login: str
    person_code: str
    person_group: str
    booklet_name: str
    value: str | None = None


class DuplicateOccurrence(_CamelModel):
    response_id: int
    value: str
    person_login: str
    person_code: str
    booklet_name: str


class DuplicateGroup(_CamelModel):
    """Responses sharing one normalized value within a unit/variable scope.

    `occurrences[0]` is the canonical occurrence (lowest response id).
    """

    unit_id: int
    unit_name: str
    unit_alias: str | None = None
    variable_id: str
    normalized_value: str
    original_value: str
    occurrences: list[DuplicateOccurrence] = Field(default_factory=list)


class EmptyResponseAnalysis(_CamelModel):
    total: int = 0
    items: list[EmptyResponseItem] = Field(default_factory=list)
    page: int | None = None
    page_size: int | None = None


class DuplicateValueAnalysis(_CamelModel):
    total: int = 0
    total_responses: int = 0
    groups: list[DuplicateGroup] = Field(default_factory=list)
    is_aggregation_applied: bool = False
    page: int | None = None
    page_size: int | None = None


class AnalysisResult(_CamelModel):
    empty_responses: EmptyResponseAnalysis = Field(default_factory=EmptyResponseAnalysis)
    duplicate_values: DuplicateValueAnalysis = Field(default_factory=DuplicateValueAnalysis)
    matching_flags: list[str] = Field(default_factory=list)
    analysis_timestamp: str


class AggregationRequest(_CamelModel):
    threshold: int
    aggregate_mode: bool


class AggregationOutcome(_CamelModel):
    success: bool
    aggregated_groups: int = 0
    aggregated_responses: int = 0
    unique_coding_cases: int = 0
    message: str


__all__ = [
    "EmptyResponseItem",
    "DuplicateOccurrence",
    "DuplicateGroup",
    "EmptyResponseAnalysis",
    "DuplicateValueAnalysis",
    "AnalysisResult",
    "AggregationRequest",
    "AggregationOutcome",
]
