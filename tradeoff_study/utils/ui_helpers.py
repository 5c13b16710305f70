# [CHANGE] Shared UI helpers for label-based Likert rendering.
from __future__ import annotations

import hashlib
import json
import re
from typing import Iterable, Mapping, Optional, Sequence

import streamlit as st

from tradeoff_study.constants import LIKERT7_LABELS


_KEY_SANITIZER = re.compile(r"[^0-9a-zA-Z_]+")


def _sanitize_key(raw: str) -> str:
    cleaned = _KEY_SANITIZER.sub("_", raw).strip("_")
    if not cleaned:
        cleaned = "likert"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    if len(cleaned) > 100:
        digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:8]
        cleaned = f"{cleaned[:91]}_{digest}"
    return cleaned


def render_likert_index(
    item_id: str,
    label: str,
    *,
    labels: Optional[Sequence[str]] = None,
    key_prefix: str = "likert",
    horizontal: bool = True,
) -> Optional[int]:
    """
    Render a Likert radio group without a default selection.

    Returns the zero-based index of the chosen label, or None when unanswered.
    Scoring shifts the index to the 1..7 scale.
    """
    label_list = list(labels) if labels else list(LIKERT7_LABELS)
    safe_key = _sanitize_key(f"{key_prefix}_{item_id}")
    selection = st.radio(
        label,
        list(range(len(label_list))),
        index=None,
        format_func=lambda idx: label_list[idx],
        horizontal=horizontal,
        key=safe_key,
    )
    if isinstance(selection, int) and 0 <= selection < len(label_list):
        return selection
    return None


def all_answered(
    responses: Mapping[str, Optional[int]],
    required: Iterable[str],
    *,
    n_options: int = len(LIKERT7_LABELS),
) -> bool:
    """
    Return True when every required item holds a valid zero-based label index.
    """
    for name in required:
        value = responses.get(name)
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        if not 0 <= value < n_options:
            return False
    return True


def key_button_label(key: str, outcomes: Mapping[str, str]) -> str:
    """Button caption for a response key, e.g. ``A（F）``."""
    return f"{outcomes.get(key, key)}（{key.upper()}）"


def key_listener_js(outcomes: Mapping[str, str]) -> str:
    """
    Script that maps physical key presses onto the matching response button.

    The listener is attached once to the parent document and clicks the
    visible button whose caption equals the key's label; typing into inputs
    is left alone.
    """
    labels = {key: key_button_label(key, outcomes) for key in outcomes}
    return """
const pdoc = window.parent.document;
const keyLabels = %s;
pdoc.responseKeyLabels = keyLabels;
if (!pdoc.responseKeyListenerAttached) {
    pdoc.addEventListener('keyup', function(event) {
        const active = pdoc.activeElement;
        if (active && (active.tagName === 'INPUT' || active.tagName === 'TEXTAREA')) { return; }
        const label = pdoc.responseKeyLabels[(event.key || '').toLowerCase()];
        if (!label) { return; }
        const button = Array.from(pdoc.querySelectorAll('button'))
            .filter(btn => btn.offsetParent !== null)
            .find(btn => btn.textContent.trim() === label);
        if (button) { event.preventDefault(); button.click(); }
    });
    pdoc.responseKeyListenerAttached = true;
}
""" % json.dumps(labels, ensure_ascii=False)
