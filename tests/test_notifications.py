"""Notification copy and the Slack webhook dispatcher."""
import json
from datetime import datetime

from app.schemas import ScheduleSnapshot
from app.services import notifications
from app.services.notifications import (
    NotificationDispatcher,
    failure_message,
    manual_intervention_message,
    success_message,
)

SNAPSHOT = ScheduleSnapshot(
    id=7,
    user_id=3,
    user_name=None,
    client_name="Acme",
    keyword="acme widgets",
    engine_ids=[1, 6],
    frequency="daily",
    next_run_at=datetime(2025, 1, 15, 9, 0),
)


def test_success_message_falls_back_to_user_id():
    text = success_message(SNAPSHOT, 3, datetime(2025, 1, 16, 9, 0))
    assert "*User:* User ID 3" in text
    assert "*Engines:* 2 engines processed" in text
    assert "*Run #:* 3" in text


def test_failure_message_without_next_run():
    text = failure_message(SNAPSHOT, 1, "boom", None)
    assert "*Error:* boom" in text
    assert "*Next Run:* unknown" in text


def test_manual_intervention_names_the_run():
    text = manual_intervention_message(41, SNAPSHOT, "db down")
    assert "Run 41" in text
    assert 'Acme - "acme widgets"' in text


def test_dispatcher_without_webhook_is_a_noop():
    assert NotificationDispatcher(webhook_url="").notify("hello") is False


class _Resp:
    status = 200

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_dispatcher_posts_json(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["body"] = json.loads(req.data.decode("utf-8"))
        return _Resp()

    monkeypatch.setattr(notifications, "urlopen", fake_urlopen)
    dispatcher = NotificationDispatcher(webhook_url="https://hooks.slack.test/x", default_channel="#ops", username="bot")

    assert dispatcher.notify("hi") is True
    assert captured["url"] == "https://hooks.slack.test/x"
    assert captured["body"] == {"text": "hi", "channel": "#ops", "username": "bot"}


def test_dispatcher_swallows_transport_errors(monkeypatch):
    def boom(req, timeout):
        raise OSError("network unreachable")

    monkeypatch.setattr(notifications, "urlopen", boom)
    assert NotificationDispatcher(webhook_url="https://hooks.slack.test/x").notify("hi", "#c") is False
