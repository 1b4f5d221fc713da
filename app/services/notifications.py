"""
Notification dispatch (Slack incoming webhook, owner email) and the message
copy for scheduler events. Delivery is fire-and-forget: every failure is
logged and swallowed.
"""
import json
import logging
from datetime import datetime
from urllib.request import Request as UrlRequest, urlopen

from app.core.config import settings
from app.services.email_sender import build_failure_email_html, send_email

log = logging.getLogger("geosched.notify")


class NotificationDispatcher:
    def __init__(
        self,
        webhook_url: str | None = None,
        default_channel: str | None = None,
        username: str | None = None,
        timeout: float = 10.0,
    ):
        self.webhook_url = (settings.slack_webhook_url if webhook_url is None else webhook_url).strip()
        self.default_channel = default_channel or settings.slack_channel
        self.username = username or settings.slack_username
        self.timeout = timeout

    def notify(self, message: str, channel: str | None = None) -> bool:
        channel = channel or self.default_channel
        if not self.webhook_url:
            log.info("Slack webhook not configured; [%s] %s", channel, message.splitlines()[0] if message else "")
            return False
        payload = {"text": message, "channel": channel, "username": self.username}
        try:
            req = UrlRequest(
                self.webhook_url,
                data=json.dumps(payload).encode("utf-8"),
                method="POST",
                headers={"Content-Type": "application/json"},
            )
            with urlopen(req, timeout=self.timeout) as resp:
                ok = 200 <= resp.status < 300
            if not ok:
                log.error("Slack webhook returned HTTP %s", resp.status)
            return ok
        except Exception as e:
            log.error("Failed to post notification to Slack (%s): %s", channel, e)
            return False

    def email(self, to: str, subject: str, html_body: str) -> bool:
        return send_email(to, subject, html_body)

    def email_failure(
        self,
        to: str,
        task_label: str,
        error_message: str,
        run_number: int,
        next_run_at: datetime | None,
    ) -> bool:
        subject, html = build_failure_email_html(task_label, error_message, run_number, next_run_at)
        return self.email(to, subject, html)


def format_next_run(moment: datetime | None) -> str:
    if moment is None:
        return "unknown"
    return moment.strftime("%A, %B %d, %Y %H:%M UTC")


def success_message(schedule, run_number: int, next_run_at: datetime) -> str:
    return "\n".join([
        "✅ *Scheduled GEO Analysis Complete*",
        f"*User:* {schedule.owner_label}",
        f"*Client:* {schedule.client_name}",
        f'*Keyword:* "{schedule.keyword}"',
        f"*Type:* {schedule.analysis_type}",
        f"*Engines:* {len(schedule.engine_ids)} engines processed",
        f"*Run #:* {run_number}",
        f"*Next Run:* {format_next_run(next_run_at)}",
    ])


def failure_message(schedule, run_number: int, error_message: str, next_run_at: datetime | None) -> str:
    return "\n".join([
        "❌ *Scheduled GEO Analysis Failed*",
        f"*User:* {schedule.owner_label}",
        f"*Client:* {schedule.client_name}",
        f'*Keyword:* "{schedule.keyword}"',
        f"*Type:* {schedule.analysis_type}",
        f"*Error:* {error_message}",
        f"*Run #:* {run_number}",
        f"*Next Run:* {format_next_run(next_run_at)}",
        "",
        "_The schedule remains active and will retry at the next scheduled time._",
    ])


def manual_intervention_message(run_id: int, schedule, detail: str) -> str:
    return (
        f"🚨 *Critical Error*: Run {run_id} ({schedule.task_label}) is stuck - "
        f"failed to update database status ({detail}). Manual intervention required; "
        "the stuck-run reaper will mark it failed once it exceeds the timeout."
    )


def advance_failed_message(schedule, detail: str) -> str:
    return (
        f"🚨 *Critical Error*: schedule {schedule.id} ({schedule.task_label}) could not be "
        f"advanced to its next run ({detail}). Manual intervention required."
    )


def scheduler_error_message(error: str) -> str:
    return f"🚨 *GEO Scheduler Error*: {error}"


def reaped_runs_message(count: int, timeout_minutes: int) -> str:
    return (
        f"⚠️ *GEO Scheduler*: marked {count} stuck run(s) as failed "
        f"(running for more than {timeout_minutes} minutes)."
    )
