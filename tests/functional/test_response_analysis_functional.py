"""Functional tests for the empty-response and duplicate-value analysis.

Runs the analyzer against the migrated SQLite database seeded per test.
"""

from __future__ import annotations

import pytest

from coding_analysis.config import load_config
from coding_analysis.errors import AnalysisError
from coding_analysis.logic.coding_analysis_service import CodingAnalysisService
from coding_analysis.logic.matching_policy import MatchingPolicyProvider
from coding_analysis.logic.query_spec import read_executor
from coding_analysis.logic.response_analyzer import ResponseAnalyzer
from coding_analysis.models.matching import ResponseMatchingFlag
from coding_analysis.models.response_status import ResponseStatus


@pytest.fixture()
def policy(engine) -> MatchingPolicyProvider:
    return MatchingPolicyProvider(engine)


@pytest.fixture()
def analyzer(engine, policy) -> ResponseAnalyzer:
    return ResponseAnalyzer(policy, lambda: read_executor(engine))


def test_workspace_without_persons_yields_empty_result(analyzer):
    result = analyzer.analyze(99)

    assert result.empty_responses.total == 0
    assert result.empty_responses.items == []
    assert result.duplicate_values.total == 0
    assert result.duplicate_values.total_responses == 0
    assert result.duplicate_values.is_aggregation_applied is False
    assert result.matching_flags == []
    assert result.analysis_timestamp.endswith("Z")


def test_empty_values_reported_until_round_two_coding_exists(analyzer, seed, make_unit):
    unit_id = make_unit()
    none_id = seed.response(unit_id, "V1", None)
    blank_id = seed.response(unit_id, "V1", "   ")
    array_id = seed.response(unit_id, "V1", "[]")
    seed.response(unit_id, "V1", "", status_v2=ResponseStatus.CODING_COMPLETE)
    seed.response(unit_id, "V1", "answer")

    result = analyzer.analyze(1)

    assert result.empty_responses.total == 3
    assert [i.response_id for i in result.empty_responses.items] == [none_id, blank_id, array_id]
    item = result.empty_responses.items[0]
    assert item.unit_name == "UNIT-1"
    assert item.unit_alias == "UNIT-1-alias"
    assert item.variable_id == "V1"
    assert item.person_login == "taker-1"
    assert item.person_code == "taker-1-code"
    assert item.person_group == "g1"
    assert item.booklet_name == "BOOKLET-1"
    assert item.value is None
    assert result.duplicate_values.total == 0


def test_identical_values_form_one_group_with_lowest_id_first(analyzer, seed, make_unit):
    unit_id = make_unit()
    first = seed.response(unit_id, "V1", "duplicate")
    second = seed.response(unit_id, "V1", "duplicate")
    third = seed.response(unit_id, "V1", "duplicate")
    seed.response(unit_id, "V1", "other")

    result = analyzer.analyze(1)

    assert result.duplicate_values.total == 1
    assert result.duplicate_values.total_responses == 3
    group = result.duplicate_values.groups[0]
    assert group.unit_id == unit_id
    assert group.variable_id == "V1"
    assert group.normalized_value == "duplicate"
    assert group.original_value == "duplicate"
    assert [o.response_id for o in group.occurrences] == [first, second, third]


def test_groups_never_span_variables(analyzer, seed, make_unit):
    unit_id = make_unit()
    seed.response(unit_id, "V1", "a")
    seed.response(unit_id, "V1", "b")
    seed.response(unit_id, "V2", "a")
    seed.response(unit_id, "V2", "c")

    result = analyzer.analyze(1)

    assert result.duplicate_values.total == 0


def test_matching_flags_control_normalization(analyzer, policy, seed, make_unit):
    unit_id = make_unit()
    seed.response(unit_id, "V1", "Yes")
    seed.response(unit_id, "V1", "yes")
    seed.response(unit_id, "V1", " y e s ")

    assert analyzer.analyze(1).duplicate_values.total == 0

    policy.set_matching_flags(1, [ResponseMatchingFlag.IGNORE_CASE])
    case_only = analyzer.analyze(1)
    assert case_only.matching_flags == ["IGNORE_CASE"]
    assert case_only.duplicate_values.total == 1
    assert case_only.duplicate_values.groups[0].normalized_value == "yes"
    assert len(case_only.duplicate_values.groups[0].occurrences) == 2

    policy.set_matching_flags(1, [ResponseMatchingFlag.IGNORE_CASE, ResponseMatchingFlag.IGNORE_WHITESPACE])
    both = analyzer.analyze(1)
    assert both.duplicate_values.total == 1
    assert both.duplicate_values.groups[0].original_value == "Yes"
    assert len(both.duplicate_values.groups[0].occurrences) == 3


def test_threshold_filters_groups_unless_aggregation_disabled(analyzer, policy, seed, make_unit):
    unit_id = make_unit()
    for value in ("pair", "pair", "triple", "triple", "triple"):
        seed.response(unit_id, "V1", value)

    assert analyzer.analyze(1, threshold=2).duplicate_values.total == 2
    high = analyzer.analyze(1, threshold=3)
    assert [g.normalized_value for g in high.duplicate_values.groups] == ["triple"]
    assert high.duplicate_values.total_responses == 3

    policy.set_matching_flags(1, [ResponseMatchingFlag.NO_AGGREGATION])
    assert analyzer.analyze(1, threshold=3).duplicate_values.total == 2


def test_unconsidered_persons_and_other_workspaces_are_ignored(analyzer, seed, make_unit):
    hidden_person = seed.person(1, "hidden", consider=False)
    hidden_unit = seed.unit(seed.booklet(hidden_person))
    seed.response(hidden_unit, "V1", "same")
    seed.response(hidden_unit, "V1", "same")
    other_ws_unit = make_unit(workspace_id=2, login="other")
    seed.response(other_ws_unit, "V1", None)
    seed.response(other_ws_unit, "V1", None)

    result = analyzer.analyze(1)

    assert result.empty_responses.total == 0
    assert result.duplicate_values.total == 0
    assert analyzer.analyze(2).empty_responses.total == 2


def test_aggregation_applied_flag_reflects_marked_responses(analyzer, seed, make_unit):
    unit_id = make_unit()
    seed.response(unit_id, "V1", "x")
    seed.response(unit_id, "V1", "x", status_v1=ResponseStatus.DUPLICATE_AGGREGATED)

    assert analyzer.analyze(1).duplicate_values.is_aggregation_applied is True


def test_collaborator_failure_is_wrapped(engine, seed, make_unit):
    class BrokenPolicy(MatchingPolicyProvider):
        def get_matching_flags(self, workspace_id):
            raise RuntimeError("settings store offline")

    analyzer = ResponseAnalyzer(BrokenPolicy(engine), lambda: read_executor(engine))

    with pytest.raises(AnalysisError) as excinfo:
        analyzer.analyze(1)
    assert str(excinfo.value) == "Failed to analyze responses: settings store offline"


def test_service_reuses_cached_analysis_until_data_changes(engine, seed, make_unit):
    config = load_config()
    service = CodingAnalysisService(config, engine)
    calls = []
    analyze = service.analyzer.analyze

    def counting_analyze(workspace_id, threshold):
        calls.append(workspace_id)
        return analyze(workspace_id, threshold)

    service.analyzer.analyze = counting_analyze
    unit_id = make_unit()
    seed.response(unit_id, "V1", "x")
    seed.response(unit_id, "V1", "x")

    assert service.get_response_analysis(1).duplicate_values.total == 1
    assert service.get_response_analysis(1).duplicate_values.total == 1
    assert len(calls) == 1

    seed.response(unit_id, "V1", None)
    assert service.get_response_analysis(1).empty_responses.total == 1
    assert len(calls) == 2
