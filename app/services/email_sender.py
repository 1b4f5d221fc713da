"""Email delivery for schedule owners (failure notices)."""
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from app.core.config import settings

log = logging.getLogger("geosched.email")


def build_failure_email_html(
    task_label: str,
    error_message: str,
    run_number: int,
    next_run_at: datetime | None,
) -> tuple[str, str]:
    """(subject, html_body) for a failed scheduled analysis."""
    from_name = getattr(settings, "smtp_from_name", None) or "GEO Scheduler"
    subject = f"{from_name}: scheduled analysis failed ({task_label})"[:200]
    next_line = (
        f"The schedule remains active and will retry at {next_run_at:%Y-%m-%d %H:%M} UTC."
        if next_run_at
        else "The schedule remains active and will retry at the next scheduled time."
    )
    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <title>{escape(subject)}</title>
</head>
<body style="margin:0;padding:0;background-color:#f1f5f9;font-family:'Segoe UI',system-ui,-apple-system,sans-serif;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f1f5f9;">
    <tr>
      <td align="center" style="padding:32px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:520px;background:#ffffff;border-radius:12px;overflow:hidden;">
          <tr>
            <td style="background:#1a2d42;padding:20px 24px;font-size:18px;font-weight:600;color:#ffffff;">{escape(from_name)}</td>
          </tr>
          <tr>
            <td style="padding:24px;font-size:15px;line-height:1.6;color:#334155;">
              <p style="margin:0 0 12px;">Run #{run_number} of <strong>{escape(task_label)}</strong> failed.</p>
              <p style="margin:0 0 12px;padding:12px;background:#fef2f2;border-radius:8px;color:#991b1b;">{escape(error_message)}</p>
              <p style="margin:0;color:#64748b;">{escape(next_line)}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""
    return subject, html


def is_mail_configured() -> bool:
    host = getattr(settings, "smtp_host", None) or ""
    return bool(host.strip())


def send_email(to: str, subject: str, html_body: str) -> bool:
    """Send one HTML email. True on success; failures are logged, never raised."""
    if not is_mail_configured():
        log.warning("SMTP not configured; email not sent to %s", to)
        return False
    host = (settings.smtp_host or "").strip()
    port = int(getattr(settings, "smtp_port", 587) or 587)
    user = (getattr(settings, "smtp_user", None) or "").strip()
    password = (getattr(settings, "smtp_password", None) or "").strip()
    from_addr = (getattr(settings, "smtp_from", None) or "noreply@geosched.local").strip()
    from_name = (getattr(settings, "smtp_from_name", None) or "").strip()
    use_tls = getattr(settings, "smtp_use_tls", True)
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr
    msg["To"] = to
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(host, port, timeout=15) as smtp:
            if use_tls:
                smtp.starttls()
            if user and password:
                smtp.login(user, password)
            smtp.sendmail(from_addr, [to], msg.as_string())
        log.info("Email sent to %s subject=%s", to, subject[:50])
        return True
    except Exception as e:
        log.exception("Failed to send email to %s: %s", to, e)
        return False
