import io

import pandas as pd
import pytest
import requests

from tradeoff_study import persistence as egress
from tradeoff_study.models import ChoiceResponse, ClientInfo, CompletionReason, FieldResponse, ResponseRecord
from tradeoff_study.persistence import (
    STATUS_DELIVERED,
    STATUS_UNCERTAIN,
    BackupError,
    DeliveryResult,
    build_upload_payload,
    deliver_payload,
    export_backup_csv,
    finalize_session,
    normalize_for_storage,
)
from tradeoff_study.utils.persistence import StudyConfig


@pytest.fixture
def filled_session(session):
    consent = ResponseRecord(0, "consent", "choice", ChoiceResponse(0), 900, 900, CompletionReason.RESPONSE)
    consent.annotate({"consented": True})
    demo = ResponseRecord(
        1, "demographics", "text_survey", FieldResponse({"age": "21", "gender": "女\n生"}), 4000, 4900,
        CompletionReason.RESPONSE,
    )
    timeout = ResponseRecord(
        2, "decision_choice", "choice", None, 20000, 24900, CompletionReason.TIMEOUT, metadata={"item_id": "T01"},
    )
    timeout.annotate({"choice_key": None, "choice": "NA_timeout"})
    for record in (consent, demo, timeout):
        session.append(record)
    session.add_properties(vcp_mean=4.5, vcp_group="high_conflict")
    return session


def test_payload_merges_meta_and_aggregates(filled_session, cfg):
    payload = build_upload_payload(filled_session, cfg)
    assert payload.participant_id == "p-001"
    assert payload.ended_at_iso
    assert len(payload.data) == 3
    for row in payload.data:
        assert row["study_name"] == "Trade offs"
        assert row["vcp_group"] == "high_conflict"
        assert row["participant_id"] == "p-001"
    assert payload.data[2]["response"] is None
    assert payload.data[2]["completion_reason"] == "timeout"


def test_normalize_for_storage():
    assert normalize_for_storage(None) == ""
    assert normalize_for_storage(True) == "true"
    assert normalize_for_storage(0) == 0
    assert normalize_for_storage({"b": "é"}) == '{"b": "é"}'
    assert normalize_for_storage(" a\n b\t c ") == "a b c"


def test_backup_csv_written_and_readable(filled_session, cfg, tmp_path):
    payload = build_upload_payload(filled_session, cfg)
    filename, data, path = export_backup_csv(payload, tmp_path)
    assert filename == "Trade_offs_p-001.csv"
    assert data.startswith(b"\xef\xbb\xbf")
    assert path is not None and path.read_bytes() == data

    frame = pd.read_csv(io.BytesIO(data), encoding="utf-8-sig", keep_default_na=False)
    assert list(frame.columns[:3]) == ["participant_id", "study_name", "version"]
    assert len(frame) == 3
    assert frame.loc[2, "response"] == ""
    assert frame.loc[2, "choice"] == "NA_timeout"
    assert frame.loc[0, "consented"] == "true"


def test_server_copy_failure_keeps_download(filled_session, cfg, tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    filename, data, path = export_backup_csv(build_upload_payload(filled_session, cfg), blocker)
    assert data
    assert path is None


def test_webhook_delivery_sends_payload(filled_session, cfg):
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))

    result = deliver_payload(build_upload_payload(filled_session, cfg), cfg, post=fake_post)
    assert result.ok
    assert calls[0][0] == cfg.upload_url
    assert calls[0][1]["timeout"] == cfg.timeout_sec
    assert b"p-001" in calls[0][1]["data"]


def test_webhook_missing_url(filled_session):
    cfg = StudyConfig(delivery_mode="webhook", upload_url=None)
    result = deliver_payload(build_upload_payload(filled_session, cfg), cfg)
    assert not result.ok
    assert result.error == "UPLOAD_URL missing"


def test_dry_run_skips_remote(filled_session, cfg):
    dry = StudyConfig(upload_url="https://example.invalid/hook", dry_run=True)

    def fail_post(url, **kwargs):
        raise AssertionError("should not post")

    result = deliver_payload(build_upload_payload(filled_session, dry), dry, post=fail_post)
    assert not result.ok
    assert result.destination == "dry_run_only"


def test_network_error_is_soft(filled_session, cfg):
    def failing_post(url, **kwargs):
        raise requests.ConnectionError("offline")

    result = deliver_payload(build_upload_payload(filled_session, cfg), cfg, post=failing_post)
    assert not result.ok
    assert "offline" in result.error


def test_delivery_mode_none(filled_session):
    cfg = StudyConfig(delivery_mode="none")
    assert not deliver_payload(build_upload_payload(filled_session, cfg), cfg).ok


def test_finalize_backs_up_when_delivery_raises(filled_session, cfg, tmp_path):
    def exploding(payload, c):
        raise RuntimeError("transport exploded")

    outcome = finalize_session(filled_session, cfg, deliver=exploding, backup_dir=tmp_path)
    assert outcome.status == STATUS_UNCERTAIN
    assert "transport exploded" in outcome.delivery.error
    assert outcome.backup_bytes
    assert outcome.backup_path == tmp_path / outcome.backup_filename


def test_finalize_delivered(filled_session, cfg, tmp_path):
    outcome = finalize_session(
        filled_session, cfg, deliver=lambda p, c: DeliveryResult(ok=True, destination="x"), backup_dir=tmp_path
    )
    assert outcome.status == STATUS_DELIVERED
    assert outcome.backup_path.exists()


def test_backup_failure_is_hard(filled_session, cfg, tmp_path, monkeypatch):
    def broken_frame(payload):
        raise ValueError("cannot render")

    monkeypatch.setattr(egress, "build_backup_frame", broken_frame)
    with pytest.raises(BackupError) as excinfo:
        finalize_session(filled_session, cfg, deliver=lambda p, c: DeliveryResult(ok=True), backup_dir=tmp_path)
    assert excinfo.value.delivery.ok


def test_client_timezone_overrides_configured_zone(filled_session, cfg):
    filled_session.client = ClientInfo(user_agent="pytest", timezone="America/Chicago")
    payload = build_upload_payload(filled_session, cfg)
    assert payload.meta["timezone"] == "America/Chicago"
    assert {row["timezone"] for row in payload.data} == {"America/Chicago"}
    assert cfg.meta["timezone"] == "UTC"
