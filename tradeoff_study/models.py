from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


class PresentationKind(str, Enum):
    INSTRUCTION = "instruction"
    CHOICE = "choice"
    LIKERT_SURVEY = "likert_survey"
    TEXT_SURVEY = "text_survey"


class CompletionReason(str, Enum):
    RESPONSE = "user_response"
    TIMEOUT = "timeout"
    EARLY_ABORT = "early_abort"


@dataclass(frozen=True)
class SurveyField:
    name: str
    prompt: str
    labels: Tuple[str, ...] = ()
    required: bool = False


@dataclass(frozen=True)
class TrialSpec:
    """One presentation step. Built before the run starts and never mutated.

    ``choices`` and ``fields`` are mutually exclusive: choice-style kinds
    (instruction, choice) carry response keys, survey kinds carry fields.
    ``metadata`` is copied verbatim into the resulting record.
    """

    trial_tag: str
    kind: PresentationKind
    stimulus: str
    choices: Tuple[str, ...] = ()
    fields: Tuple[SurveyField, ...] = ()
    time_budget_ms: Optional[int] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    allow_early_abort: bool = False
    abort_on_choice: Optional[int] = None
    mobile_only: bool = False

    def __post_init__(self) -> None:
        if self.kind in (PresentationKind.INSTRUCTION, PresentationKind.CHOICE):
            if not self.choices or self.fields:
                raise ValueError(f"{self.trial_tag}: {self.kind.value} trials need choices and no fields")
        else:
            if not self.fields or self.choices:
                raise ValueError(f"{self.trial_tag}: {self.kind.value} trials need fields and no choices")
        if self.time_budget_ms is not None and self.time_budget_ms <= 0:
            raise ValueError(f"{self.trial_tag}: time budget must be positive")
        if self.abort_on_choice is not None and not 0 <= self.abort_on_choice < len(self.choices):
            raise ValueError(f"{self.trial_tag}: abort_on_choice outside the choice set")

    @property
    def timed(self) -> bool:
        return self.time_budget_ms is not None


# Response payloads: a single choice, a field-name mapping, or the explicit empty variant.
@dataclass(frozen=True)
class ChoiceResponse:
    key: Union[str, int]


@dataclass(frozen=True)
class FieldResponse:
    values: Mapping[str, Any]


@dataclass(frozen=True)
class EmptyResponse:
    pass


ResponsePayload = Union[ChoiceResponse, FieldResponse, EmptyResponse]


def raw_response(payload: Optional[ResponsePayload]) -> Any:
    """Plain value stored in exports; ``None`` is the timeout sentinel."""
    if payload is None:
        return None
    if isinstance(payload, ChoiceResponse):
        return payload.key
    if isinstance(payload, FieldResponse):
        return dict(payload.values)
    return {}


@dataclass
class ResponseRecord:
    trial_index: int
    trial_tag: str
    trial_kind: str
    response: Optional[ResponsePayload]
    rt_ms: int
    time_elapsed: int
    completion_reason: CompletionReason
    metadata: Dict[str, Any] = field(default_factory=dict)
    derived: Dict[str, Any] = field(default_factory=dict)
    _scored: bool = field(default=False, repr=False)

    @property
    def scored(self) -> bool:
        return self._scored

    def annotate(self, values: Mapping[str, Any]) -> None:
        if self._scored:
            raise RuntimeError(f"record {self.trial_index} ({self.trial_tag}) already scored")
        self.derived.update(values)
        self._scored = True

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.derived:
            return self.derived[key]
        if key in self.metadata:
            return self.metadata[key]
        return default

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "trial_index": self.trial_index,
            "trial_tag": self.trial_tag,
            "trial_kind": self.trial_kind,
            "response": raw_response(self.response),
            "rt": self.rt_ms,
            "time_elapsed": self.time_elapsed,
            "completion_reason": self.completion_reason.value,
        }
        row.update(self.metadata)
        row.update(self.derived)
        return row


@dataclass(frozen=True)
class ClientInfo:
    user_agent: str = ""
    language: str = ""
    platform: str = ""
    mobile: bool = False
    screen: Optional[Dict[str, int]] = None
    timezone: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionState:
    """Participant identity, the append-only session log and session aggregates.

    Identity and start time are fixed at construction. Aggregate properties are
    write-once per key and are merged into every exported row.
    """

    def __init__(
        self,
        client: Optional[ClientInfo] = None,
        *,
        participant_id: Optional[str] = None,
        started_at_iso: Optional[str] = None,
    ) -> None:
        self._participant_id = participant_id or str(uuid.uuid4())
        self._started_at_iso = started_at_iso or _utc_iso()
        self.client = client or ClientInfo()
        self.ended_at_iso: Optional[str] = None
        self._log: List[ResponseRecord] = []
        self._properties: Dict[str, Any] = {}

    @property
    def participant_id(self) -> str:
        return self._participant_id

    @property
    def started_at_iso(self) -> str:
        return self._started_at_iso

    @property
    def log(self) -> Tuple[ResponseRecord, ...]:
        return tuple(self._log)

    @property
    def properties(self) -> Dict[str, Any]:
        return dict(self._properties)

    def append(self, record: ResponseRecord) -> None:
        self._log.append(record)

    def add_properties(self, **values: Any) -> None:
        for key, value in values.items():
            if key in self._properties and self._properties[key] != value:
                raise ValueError(f"session property {key!r} already set")
        self._properties.update(values)

    def records(self, trial_tag: str) -> List[ResponseRecord]:
        return [record for record in self._log if record.trial_tag == trial_tag]

    def mark_ended(self) -> str:
        if self.ended_at_iso is None:
            self.ended_at_iso = _utc_iso()
        return self.ended_at_iso

    def rows(self) -> List[Dict[str, Any]]:
        """Session log rows with aggregates merged in; record fields take precedence."""
        base = {
            "participant_id": self._participant_id,
            "started_at_iso": self._started_at_iso,
            **self._properties,
        }
        return [{**base, **record.to_row()} for record in self._log]


@dataclass
class UploadPayload:
    meta: Dict[str, Any]
    participant_id: str
    started_at_iso: str
    ended_at_iso: str
    client: Dict[str, Any]
    data: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
