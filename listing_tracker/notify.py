# listing_tracker/notify.py
"""Best-effort email notifications about finished jobs.

Nothing raised while building or sending a message escapes `dispatch`: the
job's status is already persisted by the time we get here.
"""
import html
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from .config import EmailConfig
from .errors import ConfigurationError
from .models import JobStatus
from .utils import logger

SUMMARY_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2c3e50; border-bottom: 2px solid #3498db; padding-bottom: 10px;">
    New Property Listings Found
  </h2>
  <div style="background-color: #ecf0f1; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <p><strong>New Listings:</strong> {count}</p>
    <p><strong>Search URL:</strong> <a href="{source_url}">View search</a></p>
    <p><strong>Spreadsheet:</strong> <a href="{sheet_url}">View results</a></p>
  </div>
  <p style="color: #95a5a6; font-size: 12px;">
    This is an automated notification from your property tracker.<br>Next check: {next_run}
  </p>
</div>
"""

SUMMARY_TEXT = """\
New Property Listings Found

- New Listings: {count}
- Search URL: {source_url}
- Spreadsheet: {sheet_url}

Next check: {next_run}
"""

ERROR_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #e74c3c; border-bottom: 2px solid #e74c3c; padding-bottom: 10px;">
    Property Tracker Error
  </h2>
  <div style="background-color: #fdf2f2; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <p><strong>Error:</strong> {error}</p>
    <p><strong>Search URL:</strong> <a href="{source_url}">View search</a></p>
  </div>
  <p style="color: #95a5a6; font-size: 12px;">
    The job will be retried on the next scheduled run.
  </p>
</div>
"""

ERROR_TEXT = """\
Property Tracker Error

Error: {error}
Search URL: {source_url}

The job will be retried on the next scheduled run.
"""


class SmtpEmailSender:
    def __init__(self, config: EmailConfig):
        self.config = config

    def send(self, to, subject, html_body, text_body):
        if not self.config.enabled:
            raise ConfigurationError("Email credentials not found. Set EMAIL_USER and EMAIL_APP_PASSWORD")
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.config.user
        msg["To"] = to
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(self.config.user, self.config.password)
            server.send_message(msg)


class NotificationDispatcher:
    def __init__(self, sender):
        self.sender = sender

    def dispatch(self, job, outcome):
        """Send the summary or error email for `outcome`, if one is due."""
        to = None
        try:
            to = getattr(job, "owner_email", None)
            if not to:
                return False
            if outcome.status == JobStatus.SUCCESS:
                if outcome.new_count <= 0:
                    return False
                self._send_summary(to, job, outcome)
            elif outcome.status == JobStatus.FAILED:
                self._send_error(to, job, outcome)
            else:
                return False
        except Exception as e:
            logger.error("Failed to send notification for job %s to %s: %s", outcome.job_id, to, e)
            return False
        logger.info("Notification sent to %s for job %s", to, outcome.job_id)
        return True

    def _send_summary(self, to, job, outcome):
        next_run = outcome.next_run.strftime("%Y-%m-%d %H:%M %Z").strip() if outcome.next_run else "unscheduled"
        fields = {
            "count": outcome.new_count,
            "source_url": job.source_url,
            "sheet_url": outcome.spreadsheet_url or job.sheet_ref or "",
            "next_run": next_run,
        }
        subject = f"New Listings Found - {outcome.new_count} new results"
        escaped = {k: html.escape(str(v), quote=True) for k, v in fields.items()}
        self.sender.send(to, subject, SUMMARY_HTML.format(**escaped), SUMMARY_TEXT.format(**fields))

    def _send_error(self, to, job, outcome):
        fields = {"error": outcome.error or "unknown error", "source_url": job.source_url}
        escaped = {k: html.escape(str(v), quote=True) for k, v in fields.items()}
        self.sender.send(to, "Property Tracker Error - Job Failed", ERROR_HTML.format(**escaped), ERROR_TEXT.format(**fields))
