from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import streamlit as st

from tradeoff_study.constants import DEFAULT_STUDY_NAME, DEFAULT_STUDY_VERSION

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DELIVERY_MODES = ("webhook", "sheets", "none")

_TRUTHY = {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class StudyConfig:
    study_name: str = DEFAULT_STUDY_NAME
    version: str = DEFAULT_STUDY_VERSION
    timezone: str = "unknown"
    allow_mobile: bool = True
    delivery_mode: str = "webhook"
    upload_url: Optional[str] = None
    timeout_sec: float = 10.0
    backup_dir: str = "backups"
    dry_run: bool = False

    @property
    def meta(self) -> Dict[str, str]:
        return {
            "study_name": self.study_name,
            "version": self.version,
            "timezone": self.timezone,
        }


def _secrets_dict() -> Dict[str, Any]:
    if hasattr(st, "secrets"):
        try:
            return st.secrets.to_dict()
        except Exception:
            pass
    return {}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _local_timezone(env: Mapping[str, str]) -> str:
    """IANA zone name of the host when it exposes one, else the local abbreviation."""
    name = (env.get("TZ") or "").lstrip(":")
    if not name:
        link = Path("/etc/localtime")
        if link.is_symlink():
            target = str(link.resolve())
            if "zoneinfo/" in target:
                name = target.split("zoneinfo/", 1)[1]
    return name or datetime.now().astimezone().tzname() or time.tzname[0] or "unknown"


def get_cfg(
    secrets: Optional[Mapping[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Return normalized study configuration with graceful fallbacks."""
    secrets = dict(_secrets_dict() if secrets is None else secrets)
    env = os.environ if env is None else env
    study = secrets.get("study", {}) or {}
    delivery = secrets.get("delivery", {}) or {}
    backup = secrets.get("backup", {}) or {}
    sheets = secrets.get("sheets", {}) or {}
    gsa = secrets.get("gcp_service_account", {}) or {}

    upload_url = delivery.get("upload_url") or delivery.get("url") or env.get("UPLOAD_URL")
    mode = str(delivery.get("mode") or env.get("DELIVERY_MODE") or "webhook").strip().lower()
    if mode not in DELIVERY_MODES:
        logger.warning("Unknown delivery mode %r, falling back to 'none'", mode)
        mode = "none"

    try:
        timeout_sec = float(delivery.get("timeout_sec") or env.get("UPLOAD_TIMEOUT_SEC") or 10)
    except (TypeError, ValueError):
        timeout_sec = 10.0

    return {
        "study_name": study.get("study_name") or env.get("STUDY_NAME") or DEFAULT_STUDY_NAME,
        "version": study.get("version") or env.get("STUDY_VERSION") or DEFAULT_STUDY_VERSION,
        "timezone": study.get("timezone") or env.get("STUDY_TIMEZONE") or _local_timezone(env),
        "allow_mobile": _as_bool(study.get("allow_mobile", env.get("ALLOW_MOBILE")), True),
        "delivery_mode": mode,
        "upload_url": upload_url,
        "timeout_sec": timeout_sec,
        "backup_dir": backup.get("directory") or env.get("BACKUP_DIR") or "backups",
        "dry_run": _as_bool(env.get("DRY_RUN"), False),
        "spreadsheet_id": sheets.get("spreadsheet_id") or sheets.get("sheet_id") or env.get("GOOGLE_SHEET_ID"),
        "spreadsheet_url": sheets.get("spreadsheet_url") or sheets.get("url") or env.get("GOOGLE_SHEET_URL"),
        "worksheet_name": sheets.get("worksheet_name") or sheets.get("worksheet") or "responses",
        "service_account": dict(gsa),
    }


def load_study_config(
    secrets: Optional[Mapping[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> StudyConfig:
    cfg = get_cfg(secrets, env)
    return StudyConfig(
        study_name=cfg["study_name"],
        version=cfg["version"],
        timezone=cfg["timezone"],
        allow_mobile=cfg["allow_mobile"],
        delivery_mode=cfg["delivery_mode"],
        upload_url=cfg["upload_url"],
        timeout_sec=cfg["timeout_sec"],
        backup_dir=cfg["backup_dir"],
        dry_run=cfg["dry_run"],
    )


def load_local_json(filename: str, data_dir: Optional[Path] = None) -> Optional[List[Any]]:
    """Load an item-pool override; ``None`` means use the built-in pool."""
    path = (data_dir or DATA_DIR) / filename
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as file_obj:
            data = json.load(file_obj)
    except (OSError, json.JSONDecodeError):
        logger.warning("Could not read %s, using built-in items", path)
        return None
    if isinstance(data, list) and data:
        return data
    logger.warning("%s is empty or not a list, using built-in items", path)
    return None
