from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Optional, Sequence

from tradeoff_study.constants import ANAGRAM_ITEMS, AnagramItem
from tradeoff_study.utils.persistence import load_local_json
from tradeoff_study.utils.validation import normalize_answer

logger = logging.getLogger(__name__)


def _validate_anagrams(items: Sequence[AnagramItem]) -> None:
    """
    Fail fast on a malformed pool: a solvable item must carry an answer that
    uses exactly the presented letters.
    """
    seen = set()
    for item in items:
        if not item.id or not item.letters:
            raise ValueError(f"[TASK] Incomplete anagram item: {item!r}")
        if item.id in seen:
            raise ValueError(f"[TASK] Duplicate anagram id: {item.id}")
        seen.add(item.id)
        if item.solvable:
            if not item.answer:
                raise ValueError(f"[TASK] Solvable anagram without answer: {item.id}")
            if sorted(normalize_answer(item.answer)) != sorted(normalize_answer(item.letters)):
                raise ValueError(
                    f"[TASK] Answer does not use the presented letters: item={item.id} "
                    f"letters={item.letters!r} answer={item.answer!r}"
                )


def _item_from_dict(raw: Dict[str, Any]) -> AnagramItem:
    answer = raw.get("answer")
    return AnagramItem(
        id=str(raw.get("id") or ""),
        letters=str(raw.get("letters") or ""),
        solvable=bool(raw.get("solvable")),
        answer=str(answer) if answer else None,
    )


def load_anagram_items(override: Optional[List[Dict[str, Any]]] = None) -> List[AnagramItem]:
    raw = override if override is not None else load_local_json("anagrams.json")
    if raw is None:
        items = list(ANAGRAM_ITEMS)
    else:
        items = [_item_from_dict(item) for item in raw if isinstance(item, dict)]
        logger.info("Loaded %d anagram items from override", len(items))
    _validate_anagrams(items)
    return items


def anagram_stimulus(item: AnagramItem) -> str:
    item_id = html.escape(item.id)
    letters = html.escape(item.letters)
    return f"""
<h3>字母重組（{item_id}）</h3>
<div class="small">請用下列字母組成一個英文單字：</div>
<div style="font-size:2rem; letter-spacing:0.15em; margin: 10px 0;"><b>{letters}</b></div>
<div class="small muted">你可以輸入答案後按下一頁，或按下方「放棄此題」。</div>
""".strip()
