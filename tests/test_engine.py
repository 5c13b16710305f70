import pytest

from tradeoff_study.constants import ANAGRAM_ITEMS, TRADEOFF_PAIRS
from tradeoff_study.engine import EngineState, EngineStateError, ExperimentEngine
from tradeoff_study.models import (
    ChoiceResponse,
    CompletionReason,
    EmptyResponse,
    FieldResponse,
    PresentationKind,
    TrialSpec,
)
from tradeoff_study.timeline import (
    anagram_trial,
    consent_trial,
    decision_trials,
    demographics_trial,
    device_gate_trial,
    instruction_trial,
)


def _engine(specs, session, clock, **kwargs):
    engine = ExperimentEngine(specs, session, clock=clock, **kwargs)
    engine.start()
    return engine


def test_start_twice_raises(session, clock):
    engine = _engine([instruction_trial("a", "A", ["next"])], session, clock)
    with pytest.raises(EngineStateError):
        engine.start()


def test_rt_and_elapsed_come_from_engine_clock(session, clock):
    engine = _engine([instruction_trial("a", "A", ["next"]), instruction_trial("b", "B", ["next"])], session, clock)
    clock.advance(500)
    first = engine.respond(0)
    clock.advance(300)
    second = engine.respond(0)
    assert (first.rt_ms, first.time_elapsed) == (500, 500)
    assert (second.rt_ms, second.time_elapsed) == (300, 800)
    assert engine.state is EngineState.FINISHED


def test_first_trigger_wins(session, clock):
    choice, post = decision_trials(TRADEOFF_PAIRS[0])
    engine = _engine([choice, post], session, clock)
    run = engine.current
    clock.advance(1200)
    record = engine.respond("f", run)
    assert record.completion_reason is CompletionReason.RESPONSE
    assert record.response == ChoiceResponse("f")

    clock.advance(30000)
    assert engine.poll(run) is None
    assert engine.respond("j", run) is None
    assert len(session.log) == 1
    assert not run.armed


def test_timeout_records_sentinel_and_budget(session, clock):
    choice, post = decision_trials(TRADEOFF_PAIRS[0])
    engine = _engine([choice, post], session, clock)
    run = engine.current
    clock.advance(19999)
    assert engine.poll(run) is None
    assert engine.remaining_ms() == pytest.approx(1)
    clock.advance(1)
    record = engine.poll(run)
    assert record.response is None
    assert record.rt_ms == 20000
    assert record.completion_reason is CompletionReason.TIMEOUT
    assert record.get("choice") == "NA_timeout"
    assert record.get("choice_key") is None
    assert engine.current.spec.trial_tag == "decision_post"


def test_late_response_resolves_as_timeout(session, clock):
    choice, post = decision_trials(TRADEOFF_PAIRS[0])
    engine = _engine([choice, post], session, clock)
    clock.advance(25000)
    record = engine.respond("f")
    assert record.completion_reason is CompletionReason.TIMEOUT
    assert record.response is None
    assert record.rt_ms == 20000
    assert record.time_elapsed == 20000


def test_non_qualifying_input_is_ignored(session, clock):
    choice, post = decision_trials(TRADEOFF_PAIRS[0])
    engine = _engine([choice, post], session, clock)
    assert engine.respond("x") is None
    assert engine.respond(True) is None
    assert engine.respond(5) is None
    assert session.log == ()
    record = engine.respond("J")
    assert record.response == ChoiceResponse("j")
    assert record.get("choice") == "B"


def test_survey_response_keeps_declared_fields_only(session, clock):
    engine = _engine([demographics_trial()], session, clock)
    record = engine.respond({"age": "21", "gender": "f", "injected": "x"})
    assert isinstance(record.response, FieldResponse)
    assert set(record.response.values) == {"age", "gender"}


def test_give_up_produces_single_record(session, clock):
    item = next(i for i in ANAGRAM_ITEMS if not i.solvable)
    engine = _engine([anagram_trial(item), instruction_trial("pre_finish", "done", ["next"])], session, clock)
    run = engine.current
    clock.advance(4200)
    record = engine.give_up(run)
    assert record.completion_reason is CompletionReason.EARLY_ABORT
    assert record.response == EmptyResponse()
    assert record.get("gave_up") is True
    assert record.get("elapsed_ms") == 4200
    assert record.get("correct") is None
    assert engine.respond({"anagram_answer": "late"}, run) is None
    assert [r.trial_tag for r in session.log] == ["persist_trial"]


def test_give_up_ignored_where_not_offered(session, clock):
    engine = _engine([demographics_trial()], session, clock)
    assert engine.give_up() is None
    assert engine.state is EngineState.PRESENTING


def test_consent_decline_aborts_and_completes_once(session, clock):
    calls = []
    engine = _engine(
        [consent_trial(), demographics_trial(), instruction_trial("pre_finish", "done", ["next"])],
        session,
        clock,
        on_complete=lambda eng: calls.append(eng.state) or "finalized",
    )
    record = engine.respond(1)
    assert record.get("consented") is False
    assert engine.state is EngineState.ABORTED
    assert engine.abort_reason == "consent_declined"
    assert engine.completion_result == "finalized"
    assert [r.trial_tag for r in session.log] == ["consent"]
    assert session.ended_at_iso is not None

    assert engine.respond({"age": "30"}) is None
    engine.abort("again")
    assert calls == [EngineState.ABORTED]


def test_consent_accept_continues(session, clock):
    engine = _engine([consent_trial(), demographics_trial()], session, clock)
    record = engine.respond(0)
    assert record.get("consented") is True
    assert engine.current.spec.trial_tag == "demographics"


def test_device_gate_skipped_on_desktop(session, clock):
    engine = _engine([device_gate_trial(), consent_trial()], session, clock)
    assert engine.current.spec.trial_tag == "consent"
    assert session.log == ()


def test_device_gate_blocks_mobile(mobile_session, clock):
    calls = []
    engine = _engine([device_gate_trial(), consent_trial()], mobile_session, clock, on_complete=calls.append)
    assert engine.current.spec.trial_tag == "device_gate"
    engine.respond(0)
    assert engine.state is EngineState.ABORTED
    assert engine.abort_reason == "device_gate_declined"
    assert len(calls) == 1


def test_scorer_failure_does_not_stop_run(session, clock):
    def broken(record, sess):
        raise KeyError("boom")

    engine = _engine(
        [instruction_trial("a", "A", ["next"]), instruction_trial("b", "B", ["next"])],
        session,
        clock,
        scorer=broken,
    )
    engine.respond(0)
    engine.respond(0)
    assert engine.state is EngineState.FINISHED
    assert len(session.log) == 2


def test_stale_run_handle_is_ignored(session, clock):
    engine = _engine([instruction_trial("a", "A", ["next"]), instruction_trial("b", "B", ["next"])], session, clock)
    stale = engine.current
    engine.respond(0, stale)
    assert engine.respond(0, stale) is None
    assert engine.current.spec.trial_tag == "b"


def test_empty_timeline_finishes_immediately(session, clock):
    calls = []
    engine = ExperimentEngine([], session, clock=clock, on_complete=calls.append)
    assert engine.start() is None
    assert engine.state is EngineState.FINISHED
    assert calls == [engine]


def test_trial_spec_rejects_mixed_kinds():
    with pytest.raises(ValueError):
        TrialSpec("bad", PresentationKind.CHOICE, "x")
    with pytest.raises(ValueError):
        TrialSpec("bad", PresentationKind.INSTRUCTION, "x", choices=("ok",), time_budget_ms=0)
    with pytest.raises(ValueError):
        TrialSpec("bad", PresentationKind.CHOICE, "x", choices=("a",), abort_on_choice=3)


def test_index_input_on_timed_choice_records_key(session, clock):
    choice, post = decision_trials(TRADEOFF_PAIRS[0])
    engine = _engine([choice, post], session, clock)
    clock.advance(800)
    record = engine.respond(0)
    assert record.completion_reason is CompletionReason.RESPONSE
    assert record.response == ChoiceResponse("f")
    assert record.get("choice_key") == "f"
    assert record.get("choice") == "A"


def test_label_input_on_untimed_choice_records_index(session, clock):
    spec = consent_trial()
    engine = _engine([spec, demographics_trial()], session, clock)
    record = engine.respond(spec.choices[1])
    assert record.response == ChoiceResponse(1)
    assert engine.state is EngineState.ABORTED
