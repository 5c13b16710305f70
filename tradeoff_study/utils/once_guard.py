from __future__ import annotations

from typing import Any, Callable, MutableMapping


def _result_key(key: str) -> str:
    return f"once_result_{key}"


def _flag_key(key: str) -> str:
    return f"once_started_{key}"


def run_once(
    store: MutableMapping[str, Any], key: str, fn: Callable[..., Any], *args: Any, **kwargs: Any
) -> Any:
    """
    Run ``fn`` exactly once per key in the given session store.
    Later calls return the cached result, or re-raise the cached error,
    without invoking ``fn`` again.
    """
    result_key = _result_key(key)
    flag_key = _flag_key(key)
    if not store.get(flag_key):
        store[flag_key] = True
        try:
            store[result_key] = (True, fn(*args, **kwargs))
        except Exception as exc:
            store[result_key] = (False, exc)
    ok, value = store[result_key]
    if not ok:
        raise value
    return value


def has_run(store: MutableMapping[str, Any], key: str) -> bool:
    return bool(store.get(_flag_key(key)))
