import pytest

from tradeoff_study.models import ClientInfo, SessionState
from tradeoff_study.utils.persistence import StudyConfig


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    return SessionState(ClientInfo(user_agent="pytest"), participant_id="p-001", started_at_iso="2026-01-01T00:00:00+00:00")


@pytest.fixture
def mobile_session():
    return SessionState(ClientInfo(user_agent="iPhone", mobile=True), participant_id="p-002")


@pytest.fixture
def cfg(tmp_path):
    return StudyConfig(
        study_name="Trade offs",
        version="test",
        timezone="UTC",
        delivery_mode="webhook",
        upload_url="https://example.invalid/hook",
        backup_dir=str(tmp_path / "backups"),
    )
