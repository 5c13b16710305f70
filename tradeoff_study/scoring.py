"""
Scoring and aggregation
=======================
Derived metrics for single records and for the whole session:

- Likert responses arrive as zero-based label indices and are shifted to 1..7
- Scale means are stored once per scale as session aggregates
- Group labels follow their scale mean (inclusive threshold)
- Choice, post-decision and anagram records get semantic annotations
- Persistence totals are computed from the anagram block at the end

A mean over zero valid items is ``None`` ("no value"), never 0 or NaN.
Malformed payloads normalize to ``EmptyResponse`` instead of raising.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from tradeoff_study.constants import (
    DECISION_KEYS,
    DECISION_TIMEOUT_LABEL,
    LIKERT7_LABELS,
    VCP_GROUP_HIGH,
    VCP_GROUP_LOW,
    VCP_HIGH_THRESHOLD,
)
from tradeoff_study.models import (
    ChoiceResponse,
    CompletionReason,
    EmptyResponse,
    FieldResponse,
    ResponsePayload,
    ResponseRecord,
    SessionState,
)
from tradeoff_study.utils.validation import normalize_answer

logger = logging.getLogger(__name__)

SCALE_POINTS = len(LIKERT7_LABELS)
FATIGUE_KEYS = ["fatigue_01", "fatigue_02", "fatigue_03", "fatigue_04"]


def normalize_response(raw: Any) -> ResponsePayload:
    """Coerce whatever a trial produced into the payload union."""
    if isinstance(raw, (ChoiceResponse, FieldResponse, EmptyResponse)):
        return raw
    if raw is None:
        return EmptyResponse()
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return EmptyResponse()
        return FieldResponse(parsed) if isinstance(parsed, dict) else EmptyResponse()
    if isinstance(raw, Mapping):
        return FieldResponse(dict(raw))
    return EmptyResponse()


def response_mapping(raw: Any) -> Dict[str, Any]:
    payload = normalize_response(raw)
    if isinstance(payload, FieldResponse):
        return dict(payload.values)
    return {}


def likert_value(raw_index: Any) -> Optional[int]:
    """Zero-based label index -> 1..7 scale value; invalid input -> None."""
    if isinstance(raw_index, bool) or raw_index is None:
        return None
    try:
        index = int(raw_index)
    except (TypeError, ValueError):
        return None
    if isinstance(raw_index, float) and raw_index != index:
        return None
    if not 0 <= index < SCALE_POINTS:
        return None
    return index + 1


def scale_values(responses: Mapping[str, Any], names: Optional[Iterable[str]] = None) -> List[int]:
    keys = list(names) if names is not None else list(responses.keys())
    values = [likert_value(responses.get(key)) for key in keys]
    return [value for value in values if value is not None]


def scale_mean(values: Sequence[int]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def group_label(mean: Optional[float], threshold: float = VCP_HIGH_THRESHOLD) -> Optional[str]:
    if mean is None:
        return None
    return VCP_GROUP_HIGH if mean >= threshold else VCP_GROUP_LOW


def choice_outcome(key: Any) -> str:
    return DECISION_KEYS.get(key, DECISION_TIMEOUT_LABEL) if isinstance(key, str) else DECISION_TIMEOUT_LABEL


def anagram_correct(solvable: bool, expected: Optional[str], entered: Any) -> Optional[bool]:
    """True/False for solvable items with an answer key, otherwise None (not applicable)."""
    if not solvable or not expected:
        return None
    return normalize_answer(entered) == normalize_answer(expected)


def persistence_metrics(log: Iterable[ResponseRecord]) -> Dict[str, Any]:
    trials = [record for record in log if record.trial_tag == "persist_trial"]
    giveups = [record for record in trials if record.completion_reason is CompletionReason.EARLY_ABORT]
    giveup_ms = sum(int(record.get("elapsed_ms") or 0) for record in giveups)

    total_ms: Optional[int] = None
    if len(trials) >= 2:
        first = trials[0].time_elapsed
        last = trials[-1].time_elapsed
        if isinstance(first, int) and isinstance(last, int):
            total_ms = last - first
    return {"persist_giveup_ms": giveup_ms, "persist_total_ms_est": total_ms}


# --------------------------------------------------------------------------------------
# Per-tag scorers. Each returns the fields to annotate on the record.
# --------------------------------------------------------------------------------------


def _score_consent(record: ResponseRecord, session: SessionState) -> Dict[str, Any]:
    key = record.response.key if isinstance(record.response, ChoiceResponse) else None
    return {"consented": key == 0}


def _score_vcp(record: ResponseRecord, session: SessionState) -> Dict[str, Any]:
    responses = response_mapping(record.response)
    names = [n for n in str(record.metadata.get("scale_items") or "").split(",") if n]
    mean = scale_mean(scale_values(responses, names or None))
    group = group_label(mean)
    session.add_properties(vcp_mean=mean)
    session.add_properties(vcp_group=group)
    return {"vcp_mean": mean, "vcp_group": group}


def _score_decision_choice(record: ResponseRecord, session: SessionState) -> Dict[str, Any]:
    key = record.response.key if isinstance(record.response, ChoiceResponse) else None
    return {"choice_key": key, "choice": choice_outcome(key)}


def _score_decision_post(record: ResponseRecord, session: SessionState) -> Dict[str, Any]:
    responses = response_mapping(record.response)
    item_id = record.metadata.get("item_id", "")
    return {
        "sure_1to7": likert_value(responses.get(f"{item_id}_sure")),
        "switch_1to7": likert_value(responses.get(f"{item_id}_switch")),
    }


def _score_fatigue(record: ResponseRecord, session: SessionState) -> Dict[str, Any]:
    mean = scale_mean(scale_values(response_mapping(record.response), FATIGUE_KEYS))
    session.add_properties(fatigue_mean=mean)
    return {"fatigue_mean": mean}


def _score_persist_trial(record: ResponseRecord, session: SessionState) -> Dict[str, Any]:
    gave_up = record.completion_reason is CompletionReason.EARLY_ABORT
    answer = normalize_answer(response_mapping(record.response).get("anagram_answer"))
    fields: Dict[str, Any] = {
        "answer": answer,
        "correct": anagram_correct(
            bool(record.metadata.get("solvable")),
            record.metadata.get("expected_answer"),
            answer,
        ),
        "gave_up": gave_up,
    }
    if gave_up:
        fields["elapsed_ms"] = record.rt_ms
    return fields


def _score_pre_finish(record: ResponseRecord, session: SessionState) -> Dict[str, Any]:
    metrics = persistence_metrics(session.log)
    session.add_properties(**metrics)
    return {}


SCORERS: Dict[str, Callable[[ResponseRecord, SessionState], Dict[str, Any]]] = {
    "consent": _score_consent,
    "vcp": _score_vcp,
    "decision_choice": _score_decision_choice,
    "decision_post": _score_decision_post,
    "post_fatigue": _score_fatigue,
    "persist_trial": _score_persist_trial,
    "pre_finish": _score_pre_finish,
}


def score_record(record: ResponseRecord, session: SessionState) -> None:
    """Annotate ``record`` once and update session aggregates.

    The record must already be in the session log, so session-wide metrics
    computed here include it.
    """
    scorer = SCORERS.get(record.trial_tag)
    derived = scorer(record, session) if scorer else {}
    record.annotate(derived)
