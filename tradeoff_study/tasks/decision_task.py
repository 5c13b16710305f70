from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Optional, Sequence

from tradeoff_study.constants import DECISION_TIME_BUDGET_MS, TRADEOFF_PAIRS, TradeoffPair
from tradeoff_study.utils.persistence import load_local_json

logger = logging.getLogger(__name__)


def _escape(s: Any) -> str:
    return html.escape(str(s or ""), quote=True)


def _validate_pairs(pairs: Sequence[TradeoffPair]) -> None:
    seen = set()
    for pair in pairs:
        if not pair.id or not pair.option_a or not pair.option_b:
            raise ValueError(f"[TASK] Incomplete trade-off pair: {pair!r}")
        if pair.id in seen:
            raise ValueError(f"[TASK] Duplicate trade-off id: {pair.id}")
        seen.add(pair.id)


def _pair_from_dict(raw: Dict[str, Any]) -> TradeoffPair:
    return TradeoffPair(
        id=str(raw.get("id") or ""),
        option_a=str(raw.get("A") or raw.get("option_a") or ""),
        option_b=str(raw.get("B") or raw.get("option_b") or ""),
    )


def load_tradeoff_pairs(override: Optional[List[Dict[str, Any]]] = None) -> List[TradeoffPair]:
    """
    Return the trade-off pool. A ``data/tradeoffs.json`` list of
    ``{"id", "A", "B"}`` objects replaces the built-in pairs.
    """
    raw = override if override is not None else load_local_json("tradeoffs.json")
    if raw is None:
        pairs = list(TRADEOFF_PAIRS)
    else:
        pairs = [_pair_from_dict(item) for item in raw if isinstance(item, dict)]
        logger.info("Loaded %d trade-off pairs from override", len(pairs))
    _validate_pairs(pairs)
    return pairs


def decision_stimulus(pair: TradeoffPair, time_budget_ms: int = DECISION_TIME_BUDGET_MS) -> str:
    seconds = time_budget_ms // 1000
    return f"""
<h3>{_escape(pair.id)} 打工方案選擇</h3>
<div class="small muted">按 <span class="kbd">F</span> 選 A；按 <span class="kbd">J</span> 選 B，也可以點選下方按鈕（限時 {seconds} 秒）</div>
<div class="grid2">
  <div class="choice-card">
    <b>方案 A</b><br/>
    <div class="small">{_escape(pair.option_a)}</div>
    <div class="muted small">按 F 選 A</div>
  </div>
  <div class="choice-card">
    <b>方案 B</b><br/>
    <div class="small">{_escape(pair.option_b)}</div>
    <div class="muted small">按 J 選 B</div>
  </div>
</div>
""".strip()


def post_decision_stimulus(pair: TradeoffPair) -> str:
    return f"<h3>{_escape(pair.id)} 你剛才的決策</h3>"
