"""Cron poll endpoint: bearer secret, tick summary, failure reporting."""
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlmodel import Session, select

from app.core.config import settings
from app.core.database import engine as app_engine, utcnow
from app.main import app
from app.models import ErrorLog, ScheduledAnalysis
from app.services.errors import PersistenceFailure
from app.services.schedule_store import ScheduleStore
from app.services.scheduler import Scheduler
from conftest import CRON_HEADERS, FakeDispatcher, FakeEngine

CRON_URL = "/cron/run-scheduled-analyses"


def _make_due(schedule_id: int) -> None:
    with app_engine.begin() as conn:
        conn.execute(
            update(ScheduledAnalysis.__table__)
            .where(ScheduledAnalysis.__table__.c.id == schedule_id)
            .values(next_run_at=utcnow() - timedelta(minutes=1))
        )


def test_rejects_missing_or_wrong_secret(client: TestClient):
    assert client.post(CRON_URL).status_code == 401
    r = client.post(CRON_URL, headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["error"] == "Unauthorized"
    assert client.post(CRON_URL, headers={"Authorization": "test-cron-secret"}).status_code == 401


def test_unconfigured_secret_is_503(client: TestClient, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "")
    assert client.post(CRON_URL, headers=CRON_HEADERS).status_code == 503


def test_tick_summary(client: TestClient, auth_headers: dict, app_scheduler, fake_engine):
    r = client.post(
        "/schedules",
        json={"client_name": "Acme", "keyword": "cron kw", "selected_engine_ids": [1], "frequency": "hourly"},
        headers=auth_headers,
    )
    sid = r.json()["id"]
    _make_due(sid)

    r = client.post(CRON_URL, headers=CRON_HEADERS)

    assert r.status_code == 200, r.text
    j = r.json()
    assert j["success"] is True
    assert j["processed"] >= 1
    assert j["errors"] == 0
    assert isinstance(j["reaped"], int)
    assert j["timestamp"]
    assert any(task.keyword == "cron kw" for task, _ in fake_engine.calls)
    with Session(app_engine) as db:
        row = db.get(ScheduledAnalysis, sid)
        assert row.run_count == 1
        assert row.next_run_at > utcnow()


def test_get_is_accepted_for_platform_crons(client: TestClient, app_scheduler):
    r = client.get(CRON_URL, headers=CRON_HEADERS)
    assert r.status_code == 200
    assert set(r.json()) == {"success", "processed", "errors", "reaped", "timestamp"}


class _SelectBroken(ScheduleStore):
    def list_due_schedules(self, now=None):
        raise PersistenceFailure("connection refused")


def test_storage_failure_returns_500_and_logs():
    dispatcher = FakeDispatcher()
    with TestClient(app, raise_server_exceptions=False) as c:
        c.app.state.scheduler = Scheduler(_SelectBroken(app_engine), FakeEngine(), dispatcher)
        r = c.post(CRON_URL, headers=CRON_HEADERS)
    assert r.status_code == 500
    assert r.json()["error"] == "Unexpected server error."
    assert any("connection refused" in t for t in dispatcher.texts())
    with Session(app_engine) as db:
        entries = db.exec(select(ErrorLog).where(ErrorLog.endpoint == CRON_URL)).all()
    assert any("connection refused" in (e.error_message or "") for e in entries)
