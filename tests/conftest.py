"""Pytest fixtures: API client on in-memory SQLite, file-backed store with a fixed clock, fake collaborators."""
import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# Must be set before the app (and its settings) is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-dummy")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("SLACK_WEBHOOK_URL", "")
os.environ.setdefault("SMTP_HOST", "")
# High enough that every test can register its own user
os.environ.setdefault("RATE_LIMIT_REGISTER_PER_MINUTE", "100")

from sqlmodel import Session

from app.core.database import build_engine, engine as app_engine, init_db
from app.main import app
from app.models import ScheduledAnalysis, User
from app.services.analyze import AnalysisOutput
from app.services.schedule_store import ScheduleStore
from app.services.scheduler import Scheduler

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}
ADMIN_HEADERS = {"X-Admin-Secret": "test-admin-secret"}

# Wednesday
T0 = datetime(2025, 1, 15, 8, 0, 0)


class FixedClock:
    """Callable clock returning naive UTC; tests move it explicitly."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeEngine:
    def __init__(self):
        self.calls = []
        self.error: Exception | None = None
        self.on_analyze = None

    def analyze(self, task, configuration):
        self.calls.append((task, configuration))
        if self.on_analyze:
            self.on_analyze(task, configuration)
        if self.error:
            raise self.error
        return AnalysisOutput(
            results=[{"engine": f"Engine {i}", "engine_id": i, "summary": "Trusted brand."}
                     for i in configuration["engine_ids"]],
            insights={"overall_sentiment": "positive"},
        )


class FakeDispatcher:
    def __init__(self):
        self.messages: list[tuple[str, str | None]] = []
        self.emails: list[dict] = []

    def notify(self, message, channel=None):
        self.messages.append((message, channel))
        return True

    def email_failure(self, to, task_label, error_message, run_number, next_run_at):
        self.emails.append({"to": to, "task_label": task_label, "error_message": error_message})
        return True

    def texts(self) -> list[str]:
        return [m for m, _ in self.messages]


@pytest.fixture(scope="function")
def client():
    """TestClient; the lifespan creates the tables in the in-memory DB."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def db_engine(tmp_path):
    bind = build_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    init_db(bind)
    yield bind
    bind.dispose()


@pytest.fixture
def store(db_engine, clock):
    return ScheduleStore(db_engine, clock=clock)


@pytest.fixture
def make_schedule(db_engine):
    """Insert a schedule (and its owner on first use); returns the schedule id."""
    owner: dict[str, int] = {}

    def _make(**overrides) -> int:
        with Session(db_engine) as db:
            if "user_id" not in owner:
                user = User(email="owner@example.com", hashed_password="x", name="Olivia Owner")
                db.add(user)
                db.commit()
                db.refresh(user)
                owner["user_id"] = user.id
            values = {
                "user_id": owner["user_id"],
                "client_name": "Acme",
                "keyword": "acme widgets",
                "selected_engine_ids": "[1, 6]",
                "frequency": "daily",
                "time_of_day": "09:00",
                "timezone": "UTC",
                "next_run_at": datetime(2025, 1, 15, 9, 0),
            }
            values.update(overrides)
            row = ScheduledAnalysis(**values)
            db.add(row)
            db.commit()
            db.refresh(row)
            return row.id

    return _make


@pytest.fixture
def app_scheduler(client, fake_engine, dispatcher):
    """Swap the app's scheduler for one backed by the fake engine and dispatcher."""
    scheduler = Scheduler(ScheduleStore(app_engine), fake_engine, dispatcher, channel="#test")
    previous = client.app.state.scheduler
    client.app.state.scheduler = scheduler
    yield scheduler
    client.app.state.scheduler = previous


def _register_and_login(c: TestClient, email: str, password: str = "test123456", name: str = "Test User") -> str:
    c.post("/auth/register", json={"email": email, "password": password, "name": name})
    r = c.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, f"Login failed: {r.status_code} {r.text}"
    return r.json()["access_token"]


@pytest.fixture(scope="session")
def _auth_token():
    """One registration for the whole session; the in-memory DB outlives each client."""
    with TestClient(app) as auth_client:
        return _register_and_login(auth_client, "test@example.com")


@pytest.fixture
def auth_headers(_auth_token):
    return {"Authorization": f"Bearer {_auth_token}"}


@pytest.fixture
def other_auth_headers(client):
    token = _register_and_login(client, "other@example.com", name="Other User")
    return {"Authorization": f"Bearer {token}"}
