# [CHANGE] Centralized item pools and fixed study content.
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional


# [CHANGE] Default study metadata; overridable through [study] secrets.
DEFAULT_STUDY_NAME: str = "Decision Fatigue in Trade-offs"
DEFAULT_STUDY_VERSION: str = "v8_demo_v1"


# [CHANGE] 7-point agreement labels. Widgets return the zero-based index.
LIKERT7_LABELS: List[str] = ["1 非常不同意", "2", "3", "4", "5", "6", "7 非常同意"]


# Decision task timing and response keys.
DECISION_TIME_BUDGET_MS: int = 20000
DECISION_KEYS: Dict[str, str] = {"f": "A", "j": "B"}
DECISION_TIMEOUT_LABEL: str = "NA_timeout"

CONSENT_CHOICES: List[str] = ["我同意參與", "我不同意"]
CONSENT_DECLINE_INDEX: int = 1

# Group labeling threshold for the value-conflict scale mean (inclusive).
VCP_HIGH_THRESHOLD: float = 4.5
VCP_GROUP_HIGH: str = "high_conflict"
VCP_GROUP_LOW: str = "low_conflict"


VCP_ITEMS: List[str] = [
    "當兩個選項各有優缺點時，我常覺得很難決定。",
    "面對需要取捨的選擇，我常覺得內心拉扯。",
    "我常擔心自己選錯，導致決定變得很痛苦。",
    "即使做完決定，我也常覺得不踏實。",
    "當選項涉及「時間 vs 金錢」的取捨時，我會特別糾結。",
    "我常覺得兩個重要目標無法兼顧。",
    "我做選擇時，常覺得每個選項都會失去某些重要東西。",
    "我偏好能一次滿足多種需求的選項，否則會不舒服。",
    "做重大決定後，我常反覆回想「如果選另一個會不會更好」。",
    "當我需要在效率與舒適之間取捨時，我會很難下決定。",
    "我常為了避免後悔而拖延做決定。",
    "我覺得做選擇會消耗很多心理能量。",
]


# [CHANGE] Post-task fatigue items (7-point, required).
@dataclass(frozen=True)
class ScaleItem:
    id: str
    text: str


FATIGUE_ITEMS: List[ScaleItem] = [
    ScaleItem("fatigue_01", "我現在覺得精神能量被用掉很多。"),
    ScaleItem("fatigue_02", "我現在覺得心累／腦袋疲乏。"),
    ScaleItem("fatigue_03", "我現在很難再集中注意力。"),
    ScaleItem("fatigue_04", "我現在很想停止做需要權衡的選擇。"),
]


@dataclass(frozen=True)
class DemographicField:
    name: str
    prompt: str
    required: bool = False


DEMOGRAPHIC_FIELDS: List[DemographicField] = [
    DemographicField("age", "年齡："),
    DemographicField("gender", "性別："),
    DemographicField("work_hours", "每週打工時數（大約）："),
]


# [CHANGE] Trade-off pairs shown in the timed decision block.
@dataclass(frozen=True)
class TradeoffPair:
    id: str
    option_a: str
    option_b: str


TRADEOFF_PAIRS: List[TradeoffPair] = [
    TradeoffPair("T01", "時薪 $220；每週 12 小時；單程通勤 60 分鐘；彈性低（固定班）", "時薪 $170；每週 12 小時；單程通勤 5 分鐘；彈性高（可換班）"),
    TradeoffPair("T02", "時薪 $210；每週 16 小時；單程通勤 45 分鐘；彈性中", "時薪 $180；每週 14 小時；單程通勤 10 分鐘；彈性中"),
    TradeoffPair("T03", "時薪 $240；每週 10 小時；單程通勤 50 分鐘；彈性低", "時薪 $190；每週 10 小時；單程通勤 0 分鐘（宿舍樓下）；彈性中"),
    TradeoffPair("T04", "時薪 $200；每週 20 小時；單程通勤 30 分鐘；彈性高", "時薪 $230；每週 18 小時；單程通勤 70 分鐘；彈性低"),
    TradeoffPair("T05", "時薪 $185；每週 18 小時；單程通勤 15 分鐘；彈性高", "時薪 $215；每週 18 小時；單程通勤 55 分鐘；彈性中"),
    TradeoffPair("T06", "時薪 $260；每週 8 小時；單程通勤 80 分鐘；彈性低", "時薪 $205；每週 8 小時；單程通勤 20 分鐘；彈性高"),
    TradeoffPair("T07", "時薪 $195；每週 14 小時；單程通勤 25 分鐘；彈性中", "時薪 $225；每週 14 小時；單程通勤 60 分鐘；彈性中"),
    TradeoffPair("T08", "時薪 $170；每週 22 小時；單程通勤 5 分鐘；彈性低", "時薪 $210；每週 18 小時；單程通勤 40 分鐘；彈性高"),
    TradeoffPair("T09", "時薪 $230；每週 12 小時；單程通勤 35 分鐘；彈性低", "時薪 $200；每週 12 小時；單程通勤 10 分鐘；彈性低"),
    TradeoffPair("T10", "時薪 $190；每週 16 小時；單程通勤 0 分鐘；彈性中", "時薪 $240；每週 16 小時；單程通勤 75 分鐘；彈性中"),
    TradeoffPair("T11", "時薪 $205；每週 10 小時；單程通勤 30 分鐘；彈性高", "時薪 $225；每週 10 小時；單程通勤 55 分鐘；彈性高"),
    TradeoffPair("T12", "時薪 $215；每週 14 小時；單程通勤 20 分鐘；彈性低", "時薪 $185；每週 14 小時；單程通勤 0 分鐘；彈性低"),
    TradeoffPair("T13", "時薪 $250；每週 12 小時；單程通勤 70 分鐘；彈性中", "時薪 $200；每週 12 小時；單程通勤 15 分鐘；彈性中"),
    TradeoffPair("T14", "時薪 $180；每週 20 小時；單程通勤 10 分鐘；彈性高", "時薪 $220；每週 16 小時；單程通勤 45 分鐘；彈性低"),
    TradeoffPair("T15", "時薪 $235；每週 9 小時；單程通勤 60 分鐘；彈性低", "時薪 $195；每週 9 小時；單程通勤 5 分鐘；彈性低"),
    TradeoffPair("T16", "時薪 $210；每週 18 小時；單程通勤 40 分鐘；彈性中", "時薪 $200；每週 18 小時；單程通勤 20 分鐘；彈性中"),
    TradeoffPair("T17", "時薪 $200；每週 12 小時；單程通勤 25 分鐘；彈性高", "時薪 $230；每週 12 小時；單程通勤 50 分鐘；彈性低"),
    TradeoffPair("T18", "時薪 $175；每週 16 小時；單程通勤 0 分鐘；彈性高", "時薪 $215；每週 16 小時；單程通勤 35 分鐘；彈性高"),
    TradeoffPair("T19", "時薪 $225；每週 20 小時；單程通勤 60 分鐘；彈性低", "時薪 $205；每週 20 小時；單程通勤 15 分鐘；彈性低"),
    TradeoffPair("T20", "時薪 $240；每週 14 小時；單程通勤 45 分鐘；彈性中", "時薪 $210；每週 14 小時；單程通勤 15 分鐘；彈性中"),
    TradeoffPair("T21", "時薪 $260；每週 6 小時；單程通勤 90 分鐘；彈性低", "時薪 $205；每週 6 小時；單程通勤 10 分鐘；彈性低"),
    TradeoffPair("T22", "時薪 $195；每週 18 小時；單程通勤 20 分鐘；彈性高", "時薪 $225；每週 18 小時；單程通勤 55 分鐘；彈性高"),
    TradeoffPair("T23", "時薪 $205；每週 22 小時；單程通勤 30 分鐘；彈性低", "時薪 $230；每週 20 小時；單程通勤 60 分鐘；彈性中"),
    TradeoffPair("T24", "時薪 $215；每週 12 小時；單程通勤 35 分鐘；彈性中", "時薪 $185；每週 12 小時；單程通勤 5 分鐘；彈性中"),
]


# [CHANGE] Anagram pool for the persistence block. Unsolvable items carry no answer.
@dataclass(frozen=True)
class AnagramItem:
    id: str
    letters: str
    solvable: bool
    answer: Optional[str] = None


ANAGRAM_ITEMS: List[AnagramItem] = [
    AnagramItem("A01", "TARPE", True, "TAPER"),
    AnagramItem("A02", "LATEP", True, "PLATE"),
    AnagramItem("A03", "SLEPA", True, "PLEAS"),
    AnagramItem("A04", "TRANE", True, "ANTER"),
    AnagramItem("A05", "QZPTN", False),
    AnagramItem("A06", "XJMRK", False),
    AnagramItem("A07", "VQWLP", False),
    AnagramItem("A08", "ZKQTX", False),
]
