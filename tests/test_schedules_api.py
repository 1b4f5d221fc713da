"""Schedule management API and the manual single-schedule trigger."""
from datetime import datetime

from fastapi.testclient import TestClient
from sqlmodel import Session

from app.core.database import engine as app_engine, utcnow
from app.models import ScheduledAnalysis
from app.services.errors import EngineFailure
from app.services.schedule_store import ScheduleStore

PAYLOAD = {
    "client_name": "Acme",
    "keyword": "acme widgets",
    "selected_engine_ids": [1, 6],
    "frequency": "daily",
    "time_of_day": "09:00",
    "timezone": "UTC",
}


def _create(client: TestClient, headers: dict, **overrides) -> dict:
    r = client.post("/schedules", json={**PAYLOAD, **overrides}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_create_computes_first_run(client: TestClient, auth_headers: dict):
    j = _create(client, auth_headers)
    assert j["selected_engine_ids"] == [1, 6]
    assert j["run_count"] == 0
    assert j["is_active"] is True
    assert datetime.fromisoformat(j["next_run_at"]) >= utcnow().replace(second=0, microsecond=0)


def test_create_weekly_defaults_to_monday(client: TestClient, auth_headers: dict):
    j = _create(client, auth_headers, frequency="weekly", time_of_day="7:05")
    assert j["day_of_week"] == 1
    assert j["time_of_day"] == "07:05"
    assert j["day_of_month"] is None


def test_create_validation(client: TestClient, auth_headers: dict):
    bad = [
        {"frequency": "yearly"},
        {"time_of_day": "25:00"},
        {"timezone": "Mars/Olympus"},
        {"selected_engine_ids": []},
        {"frequency": "monthly", "day_of_month": 32},
    ]
    for overrides in bad:
        r = client.post("/schedules", json={**PAYLOAD, **overrides}, headers=auth_headers)
        assert r.status_code == 422, overrides
        assert "error" in r.json()


def test_requires_auth(client: TestClient):
    assert client.get("/schedules").status_code == 401
    assert client.post("/schedules", json=PAYLOAD).status_code == 401


def test_list_only_own_schedules(client: TestClient, auth_headers: dict, other_auth_headers: dict):
    mine = _create(client, auth_headers, keyword="mine only")
    theirs = _create(client, other_auth_headers, keyword="theirs only")
    ids = [s["id"] for s in client.get("/schedules", headers=auth_headers).json()]
    assert mine["id"] in ids
    assert theirs["id"] not in ids


def test_update_toggle_delete(client: TestClient, auth_headers: dict):
    created = _create(client, auth_headers)
    sid = created["id"]

    r = client.put(
        f"/schedules/{sid}",
        json={**PAYLOAD, "frequency": "monthly", "day_of_month": 31, "keyword": "renamed"},
        headers=auth_headers,
    )
    assert r.status_code == 200
    assert r.json()["keyword"] == "renamed"
    assert r.json()["day_of_month"] == 31

    r = client.patch(f"/schedules/{sid}", json={"is_active": False}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    assert client.delete(f"/schedules/{sid}", headers=auth_headers).status_code == 200
    assert client.get(f"/schedules/{sid}", headers=auth_headers).status_code == 404


def test_manual_execute_runs_and_advances(client: TestClient, auth_headers: dict, app_scheduler, dispatcher):
    sid = _create(client, auth_headers)["id"]

    r = client.post(f"/schedules/{sid}/execute", headers=auth_headers)

    assert r.status_code == 200, r.text
    j = r.json()
    assert j["success"] is True
    assert j["status"] == "completed"
    assert 'Acme - "acme widgets"' in j["message"]
    assert j["run_id"]

    runs = client.get(f"/schedules/{sid}/runs", headers=auth_headers).json()
    assert [(run["id"], run["status"]) for run in runs] == [(j["run_id"], "completed")]
    schedule = client.get(f"/schedules/{sid}", headers=auth_headers).json()
    assert schedule["run_count"] == 1
    assert any("Scheduled GEO Analysis Complete" in t for t in dispatcher.texts())


def test_manual_execute_reports_engine_failure(client: TestClient, auth_headers: dict, app_scheduler, fake_engine):
    sid = _create(client, auth_headers)["id"]
    fake_engine.error = EngineFailure("All engines failed: Engine 1: timeout")

    r = client.post(f"/schedules/{sid}/execute", headers=auth_headers)

    assert r.status_code == 200
    j = r.json()
    assert j["success"] is False
    assert j["status"] == "failed"
    assert j["error"] == "All engines failed: Engine 1: timeout"


def test_manual_execute_status_codes(client: TestClient, auth_headers: dict, other_auth_headers: dict, app_scheduler):
    sid = _create(client, auth_headers)["id"]

    assert client.post(f"/schedules/{sid}/execute").status_code == 401
    assert client.post(f"/schedules/{sid}/execute", headers=other_auth_headers).status_code == 404
    assert client.post("/schedules/999999/execute", headers=auth_headers).status_code == 404

    client.patch(f"/schedules/{sid}", json={"is_active": False}, headers=auth_headers)
    assert client.post(f"/schedules/{sid}/execute", headers=auth_headers).status_code == 400


def test_manual_execute_conflicts_with_running_run(client: TestClient, auth_headers: dict, app_scheduler, fake_engine):
    sid = _create(client, auth_headers)["id"]
    ScheduleStore(app_engine).create_run(sid, utcnow())

    r = client.post(f"/schedules/{sid}/execute", headers=auth_headers)

    assert r.status_code == 409
    assert fake_engine.calls == []
    with Session(app_engine) as db:
        assert db.get(ScheduledAnalysis, sid).run_count == 0
