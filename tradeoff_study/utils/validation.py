import re

_MOBILE_UA = re.compile(r"Mobi|Android|iPhone|iPad", re.IGNORECASE)


def is_mobile(user_agent: str) -> bool:
    return bool(_MOBILE_UA.search(user_agent or ""))


def normalize_answer(s) -> str:
    return str(s or "").strip().upper()
