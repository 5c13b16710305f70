# Session finalization: payload assembly, best-effort delivery, local CSV backup.
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import pandas as pd
import requests

from tradeoff_study import text_blocks
from tradeoff_study.models import SessionState, UploadPayload
from tradeoff_study.utils.persistence import StudyConfig, get_cfg

logger = logging.getLogger(__name__)

STATUS_DELIVERED = "delivered"
STATUS_UNCERTAIN = "uncertain"

# Leading backup columns; everything else follows in first-seen order.
LEADING_COLS: List[str] = [
    "participant_id",
    "study_name",
    "version",
    "timezone",
    "started_at_iso",
    "trial_index",
    "trial_tag",
    "trial_kind",
    "response",
    "rt",
    "time_elapsed",
    "completion_reason",
]

SHEET_COLS: List[str] = [
    "participant_id",
    "study_name",
    "version",
    "started_at_iso",
    "ended_at_iso",
    "n_records",
    "payload_json",
]


class BackupError(RuntimeError):
    """The local backup could not be produced. This is surfaced to the participant."""


@dataclass
class DeliveryResult:
    ok: bool
    destination: str = ""
    note: str = ""
    error: Optional[str] = None


@dataclass
class FinalizationOutcome:
    payload: UploadPayload
    delivery: DeliveryResult
    backup_filename: str
    backup_bytes: bytes
    backup_path: Optional[Path]

    @property
    def status(self) -> str:
        return STATUS_DELIVERED if self.delivery.ok else STATUS_UNCERTAIN

    @property
    def message(self) -> str:
        return text_blocks.DELIVERED_MESSAGE if self.delivery.ok else text_blocks.UNCERTAIN_MESSAGE


def build_upload_payload(session: SessionState, cfg: StudyConfig) -> UploadPayload:
    """Flatten study metadata, session identity and the full log into one snapshot."""
    meta = cfg.meta
    if session.client.timezone:
        meta["timezone"] = session.client.timezone
    ended_at = session.mark_ended()
    data = [{**meta, **row} for row in session.rows()]
    return UploadPayload(
        meta=meta,
        participant_id=session.participant_id,
        started_at_iso=session.started_at_iso,
        ended_at_iso=ended_at,
        client=session.client.to_dict(),
        data=data,
    )


def normalize_for_storage(value: Any) -> Any:
    """Coerce a row value into a CSV cell. ``None`` becomes an empty cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    if isinstance(value, str):
        cleaned = value.replace("\r", " ").replace("\n", " ").replace("\t", " ")
        return " ".join(cleaned.split())
    return str(value)


def _columns(rows: List[Dict[str, Any]]) -> List[str]:
    seen: Dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    leading = [col for col in LEADING_COLS if col in seen]
    return leading + [col for col in seen if col not in LEADING_COLS]


def build_backup_frame(payload: UploadPayload) -> pd.DataFrame:
    rows = payload.data
    columns = _columns(rows)
    normalized = [{col: normalize_for_storage(row.get(col)) for col in columns} for row in rows]
    return pd.DataFrame(normalized, columns=columns)


def backup_filename(study_name: str, participant_id: str) -> str:
    slug = re.sub(r"\s+", "_", study_name.strip()) or "study"
    return f"{slug}_{participant_id}.csv"


def export_backup_csv(payload: UploadPayload, directory: Optional[Path] = None) -> tuple:
    """Render the session log as CSV and, when a directory is given, keep a server copy.

    Returns ``(filename, csv_bytes, path_or_None)``. The bytes are what the
    participant downloads; failing to render them raises ``BackupError``.
    A failed server copy is logged and leaves ``path`` as None.
    """
    filename = backup_filename(payload.meta.get("study_name", ""), payload.participant_id)
    try:
        csv_bytes = build_backup_frame(payload).to_csv(index=False).encode("utf-8-sig")
    except (ValueError, TypeError, UnicodeError) as exc:
        raise BackupError(f"Could not render backup CSV: {exc}") from exc

    path: Optional[Path] = None
    if directory is not None:
        target = Path(directory) / filename
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(csv_bytes)
            path = target
        except OSError as exc:
            logger.error("Could not write server copy of backup %s: %s", target, exc)
    return filename, csv_bytes, path


def build_sheet_row(payload: UploadPayload) -> List[Any]:
    values = {
        "participant_id": payload.participant_id,
        "study_name": payload.meta.get("study_name", ""),
        "version": payload.meta.get("version", ""),
        "started_at_iso": payload.started_at_iso,
        "ended_at_iso": payload.ended_at_iso,
        "n_records": len(payload.data),
        "payload_json": json.dumps(payload.to_dict(), ensure_ascii=False),
    }
    return [values[col] for col in SHEET_COLS]


def _post_webhook(
    payload: UploadPayload,
    url: str,
    timeout_sec: float,
    post: Callable[..., Any],
) -> DeliveryResult:
    # Fire-and-forget: the response body and status are not inspected.
    post(
        url,
        data=json.dumps(payload.to_dict(), ensure_ascii=False).encode("utf-8"),
        headers={"Content-Type": "text/plain;charset=utf-8"},
        timeout=timeout_sec,
    )
    return DeliveryResult(ok=True, destination=url, note="sent (no acknowledgement)")


def _append_sheet(payload: UploadPayload, sheet_cfg: Mapping[str, Any]) -> DeliveryResult:
    import gspread

    from tradeoff_study.utils.google_sheet import append_row_to_sheet

    try:
        destination = append_row_to_sheet(build_sheet_row(payload), header=SHEET_COLS, cfg=sheet_cfg)
    except gspread.exceptions.GSpreadException as exc:
        return DeliveryResult(ok=False, destination="sheets", error=str(exc))
    return DeliveryResult(ok=True, destination=destination, note="appended")


def deliver_payload(
    payload: UploadPayload,
    cfg: StudyConfig,
    *,
    post: Optional[Callable[..., Any]] = None,
    sheet_cfg: Optional[Mapping[str, Any]] = None,
) -> DeliveryResult:
    """Single remote delivery attempt. Never raises, never retries."""
    if cfg.dry_run:
        return DeliveryResult(ok=False, destination="dry_run_only", note="DRY_RUN: remote delivery skipped")
    try:
        if cfg.delivery_mode == "webhook":
            if not cfg.upload_url:
                return DeliveryResult(ok=False, destination="webhook", error="UPLOAD_URL missing")
            return _post_webhook(payload, cfg.upload_url, cfg.timeout_sec, post or requests.post)
        if cfg.delivery_mode == "sheets":
            return _append_sheet(payload, get_cfg() if sheet_cfg is None else sheet_cfg)
        return DeliveryResult(ok=False, destination="none", note="remote delivery disabled")
    except (requests.RequestException, RuntimeError, OSError, ValueError) as exc:
        return DeliveryResult(ok=False, destination=cfg.delivery_mode, error=str(exc))


def finalize_session(
    session: SessionState,
    cfg: StudyConfig,
    *,
    deliver: Callable[[UploadPayload, StudyConfig], DeliveryResult] = deliver_payload,
    backup_dir: Optional[Path] = None,
) -> FinalizationOutcome:
    """
    Build the payload once, attempt delivery once, then always export the backup.

    Delivery outcome never gates the backup. A ``BackupError`` propagates with
    the delivery result attached as ``exc.delivery``.
    """
    payload = build_upload_payload(session, cfg)
    try:
        delivery = deliver(payload, cfg)
    except Exception as exc:
        delivery = DeliveryResult(ok=False, destination=cfg.delivery_mode, error=str(exc))
    if delivery.ok:
        logger.info("Delivered session %s to %s (%s)", payload.participant_id, delivery.destination, delivery.note)
    else:
        logger.warning(
            "Delivery uncertain for session %s: %s", payload.participant_id, delivery.error or delivery.note
        )

    directory = Path(cfg.backup_dir) if backup_dir is None else backup_dir
    try:
        filename, csv_bytes, path = export_backup_csv(payload, directory)
    except BackupError as exc:
        logger.error("Backup failed for session %s: %s", payload.participant_id, exc)
        exc.delivery = delivery
        raise
    logger.info("Backup %s ready for session %s (server copy: %s)", filename, payload.participant_id, path)
    return FinalizationOutcome(
        payload=payload,
        delivery=delivery,
        backup_filename=filename,
        backup_bytes=csv_bytes,
        backup_path=path,
    )
