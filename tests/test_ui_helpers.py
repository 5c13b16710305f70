import json

from tradeoff_study.constants import DECISION_KEYS
from tradeoff_study.utils.ui_helpers import all_answered, key_button_label, key_listener_js


def test_key_button_label():
    assert key_button_label("f", DECISION_KEYS) == "A（F）"
    assert key_button_label("j", DECISION_KEYS) == "B（J）"


def test_key_listener_targets_response_buttons():
    script = key_listener_js(DECISION_KEYS)
    assert json.dumps({"f": "A（F）", "j": "B（J）"}, ensure_ascii=False) in script
    assert "addEventListener('keyup'" in script
    assert "responseKeyListenerAttached" in script


def test_all_answered():
    assert all_answered({"a": 0, "b": 6}, ["a", "b"])
    assert not all_answered({"a": 0, "b": None}, ["a", "b"])
    assert not all_answered({"a": 7}, ["a"])
    assert not all_answered({"a": True}, ["a"])
