"""Plain-text e-mail notifications for assignments and completed tests."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from assessment_hub.config import Settings
from assessment_hub.models import Test, TestAssignment, TestResult, User

logger = logging.getLogger(__name__)


def send_email(settings: Settings, to_email: Optional[str], subject: str, body: str) -> bool:
    """Send one plain-text message.

    Returns True when the message was handed to the SMTP server. With mail
    disabled, or without a recipient, the message is only logged. SMTP
    failures are logged and reported as False, never raised.
    """
    if not to_email:
        logger.info("No e-mail address for notification '%s'; skipped", subject)
        return False
    if not settings.mail_enabled:
        logger.info("Mail disabled; would send '%s' to %s", subject, to_email)
        return False

    try:
        msg = MIMEMultipart()
        msg["From"] = settings.mail_from
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port)
        server.starttls()
        if settings.smtp_username:
            server.login(settings.smtp_username, settings.smtp_password)
        server.sendmail(settings.mail_from, to_email, msg.as_string())
        server.quit()
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Error sending e-mail '%s' to %s", subject, to_email)
        return False


def notify_assignment(settings: Settings, user: User, test: Test, assignment: TestAssignment) -> bool:
    due = assignment.due_date.strftime("%Y-%m-%d %H:%M") if assignment.due_date else "no due date"
    minutes = assignment.time_limit or test.duration
    body = f"""
Hello {user.name},

You have been assigned the test "{test.title}".

Time limit: {minutes} minutes
Due: {due}

Log in to your dashboard to start the test.

Best regards,
Assessment Hub
"""
    return send_email(settings, user.email, f"New test assigned: {test.title}", body)


def notify_completion(settings: Settings, user: User, test: Test, result: TestResult) -> bool:
    body = f"""
Hello {user.name},

Your submission for "{test.title}" has been recorded.

Completed at: {result.completed_at.strftime("%Y-%m-%d %H:%M")} UTC

Results are shared once your reviewer releases them.

Best regards,
Assessment Hub
"""
    return send_email(settings, user.email, f"Test submitted: {test.title}", body)
