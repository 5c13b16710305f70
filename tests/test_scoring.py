import pytest

from tradeoff_study.models import (
    ChoiceResponse,
    CompletionReason,
    EmptyResponse,
    FieldResponse,
    ResponseRecord,
)
from tradeoff_study.scoring import (
    anagram_correct,
    choice_outcome,
    group_label,
    likert_value,
    normalize_response,
    persistence_metrics,
    scale_mean,
    scale_values,
    score_record,
)


def _record(tag, response, *, reason=CompletionReason.RESPONSE, rt=100, elapsed=0, metadata=None, index=0):
    return ResponseRecord(
        trial_index=index,
        trial_tag=tag,
        trial_kind="test",
        response=response,
        rt_ms=rt,
        time_elapsed=elapsed,
        completion_reason=reason,
        metadata=dict(metadata or {}),
    )


@pytest.mark.parametrize("raw, expected", [(0, 1), (6, 7), (3, 4), (7, None), (-1, None), (None, None), (True, None), ("2", 3), (2.5, None), ("x", None)])
def test_likert_value_shifts_index(raw, expected):
    assert likert_value(raw) == expected


def test_scale_mean_is_within_scale_bounds():
    values = scale_values({"a": 0, "b": 6, "c": 3})
    assert values == [1, 7, 4]
    assert 1 <= scale_mean(values) <= 7
    assert scale_mean(values) == pytest.approx(4.0)


def test_scale_mean_of_nothing_is_none():
    assert scale_mean([]) is None
    assert scale_mean(scale_values({"a": None, "b": 99})) is None
    assert group_label(None) is None


def test_group_threshold_is_inclusive():
    assert group_label(4.5) == "high_conflict"
    assert group_label(4.49) == "low_conflict"
    assert group_label(7.0) == "high_conflict"


def test_normalize_response_variants():
    assert normalize_response(None) == EmptyResponse()
    assert normalize_response('{"a": 1}') == FieldResponse({"a": 1})
    assert normalize_response("not json") == EmptyResponse()
    assert normalize_response("[1, 2]") == EmptyResponse()
    assert normalize_response({"b": 2}) == FieldResponse({"b": 2})
    payload = ChoiceResponse("f")
    assert normalize_response(payload) is payload


def test_choice_outcome():
    assert choice_outcome("f") == "A"
    assert choice_outcome("j") == "B"
    assert choice_outcome(None) == "NA_timeout"


def test_anagram_correct_not_applicable_for_unsolvable():
    assert anagram_correct(False, None, "anything") is None
    assert anagram_correct(True, "PLATE", " plate ") is True
    assert anagram_correct(True, "PLATE", "petal") is False


def test_vcp_scoring_sets_session_aggregates(session):
    record = _record(
        "vcp",
        FieldResponse({"vcp_01": 3, "vcp_02": 4}),
        metadata={"scale_items": "vcp_01,vcp_02"},
    )
    session.append(record)
    score_record(record, session)
    assert record.get("vcp_mean") == pytest.approx(4.5)
    assert session.properties["vcp_group"] == "high_conflict"


def test_vcp_scoring_without_answers_gives_no_value(session):
    record = _record("vcp", EmptyResponse(), metadata={"scale_items": "vcp_01,vcp_02"})
    session.append(record)
    score_record(record, session)
    assert session.properties["vcp_mean"] is None
    assert session.properties["vcp_group"] is None


def test_decision_post_scoring(session):
    record = _record("decision_post", FieldResponse({"T05_sure": 6, "T05_switch": 0}), metadata={"item_id": "T05"})
    session.append(record)
    score_record(record, session)
    assert record.get("sure_1to7") == 7
    assert record.get("switch_1to7") == 1


def test_record_is_scored_once(session):
    record = _record("decision_choice", ChoiceResponse("f"))
    score_record(record, session)
    with pytest.raises(RuntimeError):
        score_record(record, session)


def test_persistence_metrics():
    giveup = _record("persist_trial", EmptyResponse(), reason=CompletionReason.EARLY_ABORT, rt=1500, elapsed=10000)
    giveup.annotate({"elapsed_ms": 1500, "gave_up": True})
    solved = _record("persist_trial", FieldResponse({"anagram_answer": "PLATE"}), elapsed=13000)
    solved.annotate({"gave_up": False})
    other = _record("pre_finish", ChoiceResponse(0), elapsed=20000)

    metrics = persistence_metrics([giveup, solved, other])
    assert metrics == {"persist_giveup_ms": 1500, "persist_total_ms_est": 3000}


def test_persistence_total_needs_two_trials():
    single = _record("persist_trial", EmptyResponse(), elapsed=500)
    assert persistence_metrics([single]) == {"persist_giveup_ms": 0, "persist_total_ms_est": None}
    assert persistence_metrics([]) == {"persist_giveup_ms": 0, "persist_total_ms_est": None}
