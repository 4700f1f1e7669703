"""
Email service for the dealer portal.

Uses SMTP (Google Workspace by default) to send transactional emails:
application received, approval, rejection, dealer invites, owner alerts.

When MAIL_USERNAME / MAIL_PASSWORD are not configured the rendered message
is written to the log instead, so local development and tests never need
a mail server.

Usage:
    from app.services.email_service import send_email

    send_email(
        to="dealer@example.com",
        subject="Hello",
        template="emails/dealer_approved.txt",
        context={"contact_person": "Jane"},
    )
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)

# Outcomes returned by send_email
SENT = "sent"
LOGGED = "logged"
FAILED = "failed"


def is_configured(app=None):
    app = app or current_app
    return bool(app.config.get("MAIL_USERNAME") and app.config.get("MAIL_PASSWORD"))


def _build_message(app, to, subject, body, reply_to=None):
    from_name = app.config.get("MAIL_FROM_NAME", "Jeen Mata Impex")
    from_email = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME") or ""

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)

    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(body, "plain"))
    return msg


def _send_smtp(app, msg, body):
    """Deliver a built message. Returns SENT, LOGGED or FAILED."""
    if not is_configured(app):
        logger.info(
            f"Email not sent (SMTP not configured) — logging instead.\n"
            f"To: {msg['To']}\nSubject: {msg['Subject']}\n\n{body}"
        )
        return LOGGED

    host = app.config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = app.config.get("MAIL_SMTP_PORT", 587)

    try:
        with smtplib.SMTP(host, port, timeout=30) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            server.login(app.config["MAIL_USERNAME"], app.config["MAIL_PASSWORD"])
            server.send_message(msg)
        logger.info(f"Email sent to {msg['To']} — {msg['Subject']}")
        return SENT
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {msg['To']}: {e}")
        return FAILED


def send_email(to, subject, template, context=None, reply_to=None):
    """
    Send a templated plain-text email and report the outcome.

    Blocks until SMTP finishes so the notification dispatcher gets a
    per-channel result.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        template:  Path to Jinja2 template (relative to templates/).
        context:   Dict of variables to pass to the template.
        reply_to:  Optional reply-to address.

    Returns:
        SENT, LOGGED (SMTP not configured) or FAILED.
    """
    app = current_app._get_current_object()
    body = render_template(template, **(context or {}))
    msg = _build_message(app, to, subject, body, reply_to=reply_to)
    return _send_smtp(app, msg, body)
