"""
Execution engine
================
Runs a pre-built timeline one trial at a time.

    IDLE -> PRESENTING -> RESOLVED -> PRESENTING -> ... -> FINISHED
                     \\-> ABORTED

A live trial resolves through exactly one of three triggers: a qualifying
response, its timeout, or the early-abort affordance. ``TrialRun`` holds the
armed/resolved guard, so whichever trigger arrives first records the trial and
every later trigger for that run returns ``None``.

Timing is instrumented here: ``rt_ms`` is measured from the trial's own start
and ``time_elapsed`` from engine start, both on the injected monotonic clock.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from tradeoff_study.models import (
    ChoiceResponse,
    CompletionReason,
    EmptyResponse,
    FieldResponse,
    PresentationKind,
    ResponsePayload,
    ResponseRecord,
    SessionState,
    TrialSpec,
)
from tradeoff_study.scoring import normalize_response, score_record

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Scorer = Callable[[ResponseRecord, SessionState], None]


def perf_clock_ms() -> float:
    return time.perf_counter() * 1000.0


class EngineState(str, Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    RESOLVED = "resolved"
    FINISHED = "finished"
    ABORTED = "aborted"


class EngineStateError(RuntimeError):
    pass


class TrialRun:
    """One presentation of a TrialSpec with its own clock origin."""

    def __init__(self, spec: TrialSpec, index: int, started_ms: float) -> None:
        self.spec = spec
        self.index = index
        self.started_ms = started_ms
        self.record: Optional[ResponseRecord] = None
        self._armed = True

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def deadline_ms(self) -> Optional[float]:
        if self.spec.time_budget_ms is None:
            return None
        return self.started_ms + self.spec.time_budget_ms

    def expired(self, now_ms: float) -> bool:
        deadline = self.deadline_ms
        return deadline is not None and now_ms >= deadline

    def remaining_ms(self, now_ms: float) -> Optional[float]:
        deadline = self.deadline_ms
        if deadline is None:
            return None
        return max(0.0, deadline - now_ms)

    def disarm(self) -> bool:
        """Claim the resolution. Only the first caller gets True."""
        if not self._armed:
            return False
        self._armed = False
        return True


class ExperimentEngine:
    def __init__(
        self,
        timeline: Sequence[TrialSpec],
        session: SessionState,
        *,
        clock: Clock = perf_clock_ms,
        scorer: Scorer = score_record,
        on_complete: Optional[Callable[["ExperimentEngine"], Any]] = None,
    ) -> None:
        self.timeline: List[TrialSpec] = list(timeline)
        self.session = session
        self._clock = clock
        self._scorer = scorer
        self._on_complete = on_complete
        self.state = EngineState.IDLE
        self.current: Optional[TrialRun] = None
        self.abort_reason: Optional[str] = None
        self.completion_result: Any = None
        self._cursor = 0
        self._origin_ms: Optional[float] = None
        self._completed = False

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.state in (EngineState.FINISHED, EngineState.ABORTED)

    @property
    def progress(self) -> tuple:
        return self._cursor, len(self.timeline)

    def start(self) -> Optional[TrialRun]:
        if self.state is not EngineState.IDLE:
            raise EngineStateError(f"engine already started (state={self.state.value})")
        self._origin_ms = self._clock()
        return self._advance()

    def remaining_ms(self) -> Optional[float]:
        """Time left on the live trial's budget; None when untimed or idle."""
        if self.state is not EngineState.PRESENTING or self.current is None:
            return None
        return self.current.remaining_ms(self._now())

    def _now(self) -> float:
        return self._clock()

    def _elapsed_since_start(self, now_ms: float) -> int:
        return int(round(now_ms - (self._origin_ms or now_ms)))

    def _advance(self) -> Optional[TrialRun]:
        while self._cursor < len(self.timeline):
            spec = self.timeline[self._cursor]
            index = self._cursor
            self._cursor += 1
            if spec.mobile_only and not self.session.client.mobile:
                logger.debug("Skipping %s on non-mobile client", spec.trial_tag)
                continue
            self.current = TrialRun(spec, index, self._now())
            self.state = EngineState.PRESENTING
            logger.debug("Presenting trial %d (%s)", index, spec.trial_tag)
            return self.current
        self.current = None
        self._complete(EngineState.FINISHED)
        return None

    def _complete(self, state: EngineState, reason: Optional[str] = None) -> None:
        self.state = state
        self.current = None
        self.abort_reason = reason
        if self._completed:
            return
        self._completed = True
        self.session.mark_ended()
        if state is EngineState.ABORTED:
            logger.info("Session %s aborted: %s", self.session.participant_id, reason)
        else:
            logger.info("Session %s finished with %d records", self.session.participant_id, len(self.session.log))
        if self._on_complete is not None:
            self.completion_result = self._on_complete(self)

    def abort(self, reason: str) -> None:
        """Discard the rest of the timeline; completion still runs once."""
        if self.done:
            return
        if self.current is not None:
            self.current.disarm()
        self._complete(EngineState.ABORTED, reason)

    # ------------------------------------------------------------------
    # triggers
    # ------------------------------------------------------------------

    def _live_run(self, run: Optional[TrialRun]) -> Optional[TrialRun]:
        if run is not None and run is not self.current:
            return None
        if self.state is not EngineState.PRESENTING or self.current is None:
            return None
        return self.current

    def respond(self, response: Any, run: Optional[TrialRun] = None) -> Optional[ResponseRecord]:
        """Qualifying input from the participant.

        A response that arrives after the trial's deadline loses to the timer.
        Input outside the trial's response constraints is ignored.
        """
        live = self._live_run(run)
        if live is None:
            return None
        now = self._now()
        if live.expired(now):
            return self._resolve(live, None, CompletionReason.TIMEOUT, now)
        payload = self._qualify(live.spec, response)
        if payload is None:
            logger.debug("Ignoring non-qualifying input for %s: %r", live.spec.trial_tag, response)
            return None
        return self._resolve(live, payload, CompletionReason.RESPONSE, now)

    def poll(self, run: Optional[TrialRun] = None) -> Optional[ResponseRecord]:
        """Timer check; resolves the live trial as a timeout once its budget has elapsed."""
        live = self._live_run(run)
        if live is None:
            return None
        now = self._now()
        if not live.expired(now):
            return None
        return self._resolve(live, None, CompletionReason.TIMEOUT, now)

    def give_up(self, run: Optional[TrialRun] = None) -> Optional[ResponseRecord]:
        """Early-abort affordance; only trials that offer it can be resolved this way."""
        live = self._live_run(run)
        if live is None or not live.spec.allow_early_abort:
            return None
        now = self._now()
        if live.expired(now):
            return self._resolve(live, None, CompletionReason.TIMEOUT, now)
        return self._resolve(live, EmptyResponse(), CompletionReason.EARLY_ABORT, now)

    @staticmethod
    def _qualify(spec: TrialSpec, response: Any) -> Optional[ResponsePayload]:
        """Map raw input onto the trial's response constraints.

        Timed choices record the response key ("f"/"j"); untimed choices
        record the button index. Either form of input is accepted.
        """
        if spec.kind in (PresentationKind.INSTRUCTION, PresentationKind.CHOICE):
            key = response.key if isinstance(response, ChoiceResponse) else response
            if isinstance(key, bool):
                return None
            if isinstance(key, str):
                lowered = key.lower()
                if key in spec.choices:
                    index = spec.choices.index(key)
                elif lowered in spec.choices:
                    index = spec.choices.index(lowered)
                else:
                    return None
            elif isinstance(key, int) and 0 <= key < len(spec.choices):
                index = key
            else:
                return None
            return ChoiceResponse(spec.choices[index] if spec.timed else index)
        payload = normalize_response(response)
        if isinstance(payload, FieldResponse):
            names = {f.name for f in spec.fields}
            return FieldResponse({k: v for k, v in payload.values.items() if k in names})
        return payload

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------

    def _resolve(
        self,
        run: TrialRun,
        payload: Optional[ResponsePayload],
        reason: CompletionReason,
        now_ms: float,
    ) -> Optional[ResponseRecord]:
        if not run.disarm():
            return None
        self.state = EngineState.RESOLVED
        spec = run.spec
        if reason is CompletionReason.TIMEOUT:
            rt_ms = int(spec.time_budget_ms or 0)
            elapsed = self._elapsed_since_start(run.started_ms + rt_ms)
        else:
            rt_ms = int(round(now_ms - run.started_ms))
            elapsed = self._elapsed_since_start(now_ms)
        record = ResponseRecord(
            trial_index=run.index,
            trial_tag=spec.trial_tag,
            trial_kind=spec.kind.value,
            response=payload,
            rt_ms=rt_ms,
            time_elapsed=elapsed,
            completion_reason=reason,
            metadata=dict(spec.metadata),
        )
        run.record = record
        self.session.append(record)
        try:
            self._scorer(record, self.session)
        except Exception:
            logger.exception("Scoring failed for trial %d (%s)", run.index, spec.trial_tag)
        logger.debug(
            "Resolved trial %d (%s): %s after %d ms", run.index, spec.trial_tag, reason.value, rt_ms
        )

        if (
            spec.abort_on_choice is not None
            and isinstance(payload, ChoiceResponse)
            and payload.key in (spec.abort_on_choice, spec.choices[spec.abort_on_choice])
        ):
            self._complete(EngineState.ABORTED, f"{spec.trial_tag}_declined")
            return record
        self._advance()
        return record
