"""Timeline construction.

The whole trial sequence is built before the run starts. Randomization is
limited to two independent full permutations (trade-off pairs, anagrams),
drawn fresh for every session. Nothing is reordered afterwards.
"""
from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence, TypeVar

from tradeoff_study import text_blocks
from tradeoff_study.constants import (
    CONSENT_CHOICES,
    CONSENT_DECLINE_INDEX,
    DECISION_KEYS,
    DECISION_TIME_BUDGET_MS,
    DEMOGRAPHIC_FIELDS,
    FATIGUE_ITEMS,
    LIKERT7_LABELS,
    VCP_ITEMS,
    AnagramItem,
    TradeoffPair,
)
from tradeoff_study.models import PresentationKind, SurveyField, TrialSpec
from tradeoff_study.tasks.anagram_task import anagram_stimulus, load_anagram_items
from tradeoff_study.tasks.decision_task import (
    decision_stimulus,
    load_tradeoff_pairs,
    post_decision_stimulus,
)
from tradeoff_study.utils.persistence import StudyConfig, load_local_json

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LIKERT = tuple(LIKERT7_LABELS)


def shuffle_items(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Uniform permutation without replacement (Fisher-Yates); input is left untouched."""
    rng = rng or random.Random()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def vcp_field_names(count: int) -> List[str]:
    return [f"vcp_{idx:02d}" for idx in range(1, count + 1)]


def _load_vcp_items() -> List[str]:
    raw = load_local_json("vcp_items.json")
    if raw is None:
        return list(VCP_ITEMS)
    return [str(item) for item in raw if str(item).strip()]


def device_gate_trial() -> TrialSpec:
    return TrialSpec(
        trial_tag="device_gate",
        kind=PresentationKind.INSTRUCTION,
        stimulus=text_blocks.DEVICE_GATE_HTML,
        choices=tuple(text_blocks.DEVICE_GATE_CHOICES),
        abort_on_choice=0,
        mobile_only=True,
    )


def consent_trial() -> TrialSpec:
    return TrialSpec(
        trial_tag="consent",
        kind=PresentationKind.CHOICE,
        stimulus=text_blocks.CONSENT_HTML,
        choices=tuple(CONSENT_CHOICES),
        abort_on_choice=CONSENT_DECLINE_INDEX,
    )


def demographics_trial() -> TrialSpec:
    return TrialSpec(
        trial_tag="demographics",
        kind=PresentationKind.TEXT_SURVEY,
        stimulus=text_blocks.DEMOGRAPHICS_HTML,
        fields=tuple(SurveyField(f.name, f.prompt, required=f.required) for f in DEMOGRAPHIC_FIELDS),
    )


def vcp_trial(items: Sequence[str]) -> TrialSpec:
    names = vcp_field_names(len(items))
    return TrialSpec(
        trial_tag="vcp",
        kind=PresentationKind.LIKERT_SURVEY,
        stimulus=text_blocks.VCP_HTML,
        fields=tuple(
            SurveyField(name, text, labels=_LIKERT, required=True) for name, text in zip(names, items)
        ),
        metadata={"scale_items": ",".join(names)},
    )


def instruction_trial(tag: str, stimulus: str, choices: Sequence[str]) -> TrialSpec:
    return TrialSpec(
        trial_tag=tag,
        kind=PresentationKind.INSTRUCTION,
        stimulus=stimulus,
        choices=tuple(choices),
    )


def decision_trials(pair: TradeoffPair) -> List[TrialSpec]:
    """A timed binary choice immediately followed by its two-item rating."""
    choice = TrialSpec(
        trial_tag="decision_choice",
        kind=PresentationKind.CHOICE,
        stimulus=decision_stimulus(pair, DECISION_TIME_BUDGET_MS),
        choices=tuple(DECISION_KEYS),
        time_budget_ms=DECISION_TIME_BUDGET_MS,
        metadata={"item_id": pair.id, "optionA": pair.option_a, "optionB": pair.option_b},
    )
    post = TrialSpec(
        trial_tag="decision_post",
        kind=PresentationKind.LIKERT_SURVEY,
        stimulus=post_decision_stimulus(pair),
        fields=(
            SurveyField(f"{pair.id}_sure", text_blocks.POST_DECISION_SURE, labels=_LIKERT, required=True),
            SurveyField(f"{pair.id}_switch", text_blocks.POST_DECISION_SWITCH, labels=_LIKERT, required=True),
        ),
        metadata={"item_id": pair.id},
    )
    return [choice, post]


def fatigue_trial() -> TrialSpec:
    return TrialSpec(
        trial_tag="post_fatigue",
        kind=PresentationKind.LIKERT_SURVEY,
        stimulus=text_blocks.FATIGUE_HTML,
        fields=tuple(SurveyField(item.id, item.text, labels=_LIKERT, required=True) for item in FATIGUE_ITEMS),
    )


def anagram_trial(item: AnagramItem) -> TrialSpec:
    return TrialSpec(
        trial_tag="persist_trial",
        kind=PresentationKind.TEXT_SURVEY,
        stimulus=anagram_stimulus(item),
        fields=(SurveyField("anagram_answer", text_blocks.ANAGRAM_PROMPT),),
        metadata={
            "anagram_id": item.id,
            "letters": item.letters,
            "solvable": item.solvable,
            "expected_answer": item.answer,
        },
        allow_early_abort=True,
    )


def build_timeline(
    cfg: StudyConfig,
    *,
    tradeoffs: Optional[Sequence[TradeoffPair]] = None,
    anagrams: Optional[Sequence[AnagramItem]] = None,
    vcp_items: Optional[Sequence[str]] = None,
    rng: Optional[random.Random] = None,
) -> List[TrialSpec]:
    rng = rng or random.Random()
    tradeoffs = list(tradeoffs) if tradeoffs is not None else load_tradeoff_pairs()
    anagrams = list(anagrams) if anagrams is not None else load_anagram_items()
    vcp_items = list(vcp_items) if vcp_items is not None else _load_vcp_items()

    timeline: List[TrialSpec] = []
    if not cfg.allow_mobile:
        timeline.append(device_gate_trial())
    timeline.append(consent_trial())
    timeline.append(demographics_trial())
    timeline.append(vcp_trial(vcp_items))
    timeline.append(instruction_trial("task_instructions", text_blocks.TASK_INSTRUCTIONS_HTML, text_blocks.START_CHOICES))

    for pair in shuffle_items(tradeoffs, rng):
        timeline.extend(decision_trials(pair))

    timeline.append(fatigue_trial())
    timeline.append(
        instruction_trial("persist_instructions", text_blocks.PERSIST_INSTRUCTIONS_HTML, text_blocks.START_CHOICES)
    )
    for item in shuffle_items(anagrams, rng):
        timeline.append(anagram_trial(item))

    timeline.append(instruction_trial("pre_finish", text_blocks.PRE_FINISH_HTML, text_blocks.NEXT_CHOICES))
    logger.info(
        "Built timeline: %d trials (%d trade-offs, %d anagrams, device gate=%s)",
        len(timeline),
        len(tradeoffs),
        len(anagrams),
        not cfg.allow_mobile,
    )
    return timeline
