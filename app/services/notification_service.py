"""Notification service — best-effort email + WhatsApp side channel.

The dispatcher is built once in create_app() from NotificationConfig and
stored on app.extensions["notifications"]; routes fetch it with
get_dispatcher(). dispatch() tries every channel the notification has a
recipient for and returns a DispatchResult. It never raises — a failed
notification must not undo an approval that already committed.

Message builders (approval_notice, rejection_notice, ...) turn a
DealerApplication or Account into a channel-agnostic Notification.
"""

import logging
from dataclasses import dataclass, field

from flask import current_app, render_template

from app.services import email_service, whatsapp_service
from app.services.whatsapp_service import ChannelResult, WhatsAppConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationConfig:
    company_name: str
    app_base_url: str
    owner_email: str | None
    owner_whatsapp: str | None
    whatsapp: WhatsAppConfig

    @classmethod
    def from_app_config(cls, config):
        return cls(
            company_name=config.get("COMPANY_NAME") or "Jeen Mata Impex",
            app_base_url=(config.get("APP_BASE_URL") or "").rstrip("/"),
            owner_email=config.get("OWNER_EMAIL"),
            owner_whatsapp=config.get("OWNER_WHATSAPP_NUMBER"),
            whatsapp=WhatsAppConfig.from_app_config(config),
        )


@dataclass
class Notification:
    """A message for one recipient, rendered per channel from templates."""

    kind: str
    subject: str
    context: dict
    email: str | None = None
    phone: str | None = None

    @property
    def email_template(self):
        return f"emails/{self.kind}.txt"

    @property
    def whatsapp_template(self):
        return f"whatsapp/{self.kind}.txt"


@dataclass
class DispatchResult:
    kind: str
    results: list = field(default_factory=list)

    @property
    def success(self):
        return any(r.success for r in self.results)

    @property
    def errors(self):
        return [r.error for r in self.results if r.error and not r.skipped]


class NotificationDispatcher:
    def __init__(self, config):
        self.config = config

    def dispatch(self, notification):
        """Deliver on every channel with a recipient. Never raises."""
        result = DispatchResult(kind=notification.kind)
        context = {
            "company_name": self.config.company_name,
            "app_base_url": self.config.app_base_url,
            **notification.context,
        }

        if notification.email:
            result.results.append(self._send_email(notification, context))
        if notification.phone:
            result.results.append(self._send_whatsapp(notification, context))

        if not result.results:
            logger.info(f"Notification '{notification.kind}' has no recipients — skipped")
        elif not result.success:
            logger.warning(
                f"Notification '{notification.kind}' not delivered on any channel: "
                f"{'; '.join(result.errors) or 'all channels disabled'}"
            )
        return result

    def _send_email(self, notification, context):
        try:
            outcome = email_service.send_email(
                to=notification.email,
                subject=notification.subject,
                template=notification.email_template,
                context=context,
            )
        except Exception as e:
            # Template or transport bug: log only
            logger.error(
                f"Email notification '{notification.kind}' to {notification.email} failed: {e}",
                exc_info=True,
            )
            return ChannelResult(channel="email", success=False, error=str(e))

        if outcome == email_service.FAILED:
            return ChannelResult(channel="email", success=False, error="SMTP delivery failed")
        return ChannelResult(channel="email", success=True)

    def _send_whatsapp(self, notification, context):
        if not self.config.whatsapp.is_configured:
            return ChannelResult(
                channel="whatsapp",
                success=False,
                error="WhatsApp service is not configured or disabled",
                skipped=True,
            )
        try:
            text = render_template(notification.whatsapp_template, **context)
        except Exception as e:
            logger.error(f"WhatsApp template for '{notification.kind}' failed: {e}", exc_info=True)
            return ChannelResult(channel="whatsapp", success=False, error=str(e))
        try:
            return whatsapp_service.send_message(self.config.whatsapp, notification.phone, text)
        except Exception as e:
            logger.error(
                f"WhatsApp notification '{notification.kind}' to {notification.phone} failed: {e}",
                exc_info=True,
            )
            return ChannelResult(channel="whatsapp", success=False, error=str(e))


def init_notifications(app):
    """Resolve notification settings once and attach the dispatcher."""
    config = NotificationConfig.from_app_config(app.config)
    app.extensions["notifications"] = NotificationDispatcher(config)
    if not config.whatsapp.is_configured:
        app.logger.info("WhatsApp notifications disabled or not configured.")


def get_dispatcher():
    return current_app.extensions["notifications"]


# ──────────────────────────────────────────────
# Message builders
# ──────────────────────────────────────────────

def _application_context(application):
    return {
        "business_name": application.business_name,
        "contact_person": application.contact_person,
        "email": application.email,
        "phone": application.phone,
        "address": application.address,
        "business_type": application.business_type,
    }


def approval_notice(application):
    return Notification(
        kind="dealer_approved",
        subject="Congratulations! Your Dealer Application has been Approved",
        context=_application_context(application),
        email=application.email,
        phone=application.whatsapp or application.phone,
    )


def rejection_notice(application, reason):
    return Notification(
        kind="dealer_rejected",
        subject="Update on Your Dealer Application",
        context={**_application_context(application), "reason": reason},
        email=application.email,
        phone=application.whatsapp or application.phone,
    )


def application_received_notice(application):
    return Notification(
        kind="application_received",
        subject="We received your dealer application",
        context=_application_context(application),
        email=application.email,
        phone=application.whatsapp or application.phone,
    )


def owner_new_application_notice(application, config):
    return Notification(
        kind="owner_new_application",
        subject=f"New dealer application — {application.business_name}",
        context=_application_context(application),
        email=config.owner_email,
        phone=config.owner_whatsapp,
    )


def dealer_invited_notice(account):
    return Notification(
        kind="dealer_invited",
        subject="Your dealer account is ready",
        context={
            "business_name": account.business_name,
            "contact_person": account.full_name,
            "email": account.email,
        },
        email=account.email,
        phone=account.whatsapp or account.phone,
    )
