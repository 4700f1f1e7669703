"""WhatsApp service — message delivery through a pluggable provider.

Providers:
    twilio             Twilio Messages API (form-encoded, basic auth)
    whatsapp-business  Meta Graph API /<phone_number_id>/messages
    custom-webhook     POST {to, message, timestamp} to our own relay

Settings are resolved once into a WhatsAppConfig at startup and passed in
explicitly. A disabled or half-configured provider is a normal state:
send_message() returns a skipped ChannelResult instead of raising.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)

PROVIDERS = ("twilio", "whatsapp-business", "custom-webhook")

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
GRAPH_API_URL = "https://graph.facebook.com/v18.0/{phone_number_id}/messages"


@dataclass(frozen=True)
class ChannelResult:
    """Outcome of one delivery attempt on one channel."""

    channel: str
    success: bool
    error: str | None = None
    message_id: str | None = None
    skipped: bool = False


@dataclass(frozen=True)
class WhatsAppConfig:
    enabled: bool = False
    provider: str = "twilio"
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_whatsapp_number: str | None = None
    business_access_token: str | None = None
    business_phone_number_id: str | None = None
    webhook_url: str | None = None
    webhook_api_key: str | None = None

    @classmethod
    def from_app_config(cls, config):
        return cls(
            enabled=bool(config.get("WHATSAPP_ENABLED")),
            provider=config.get("WHATSAPP_PROVIDER") or "twilio",
            twilio_account_sid=config.get("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=config.get("TWILIO_AUTH_TOKEN"),
            twilio_whatsapp_number=config.get("TWILIO_WHATSAPP_NUMBER"),
            business_access_token=config.get("WHATSAPP_BUSINESS_ACCESS_TOKEN"),
            business_phone_number_id=config.get("WHATSAPP_BUSINESS_PHONE_NUMBER_ID"),
            webhook_url=config.get("WHATSAPP_WEBHOOK_URL"),
            webhook_api_key=config.get("WHATSAPP_WEBHOOK_API_KEY"),
        )

    @property
    def is_configured(self):
        if not self.enabled:
            return False
        if self.provider == "twilio":
            return bool(
                self.twilio_account_sid
                and self.twilio_auth_token
                and self.twilio_whatsapp_number
            )
        if self.provider == "whatsapp-business":
            return bool(self.business_access_token and self.business_phone_number_id)
        if self.provider == "custom-webhook":
            return bool(self.webhook_url and self.webhook_api_key)
        return False

    def status(self):
        """Config summary without credentials (for admin diagnostics)."""
        return {
            "enabled": self.enabled,
            "provider": self.provider,
            "configured": self.is_configured,
        }


def normalize_phone(phone):
    """Strip everything except digits and a leading '+'."""
    return re.sub(r"[^\d+]", "", phone or "")


def send_message(config, to, message):
    """Send a WhatsApp text. Never raises; returns a ChannelResult."""
    if not config.is_configured:
        return ChannelResult(
            channel="whatsapp",
            success=False,
            error="WhatsApp service is not configured or disabled",
            skipped=True,
        )

    phone = normalize_phone(to)
    if not phone:
        return ChannelResult(
            channel="whatsapp", success=False, error="No phone number provided", skipped=True
        )

    senders = {
        "twilio": _send_via_twilio,
        "whatsapp-business": _send_via_business_api,
        "custom-webhook": _send_via_custom_webhook,
    }
    try:
        result = senders[config.provider](config, phone, message)
    except requests.RequestException as e:
        logger.error(f"WhatsApp send via {config.provider} to {phone} failed: {e}")
        return ChannelResult(channel="whatsapp", success=False, error=str(e))
    except Exception as e:
        # Unexpected provider response: log only
        logger.error(
            f"WhatsApp send via {config.provider} to {phone} failed: {e}", exc_info=True
        )
        return ChannelResult(channel="whatsapp", success=False, error=str(e))

    if result.success:
        logger.info(f"WhatsApp message sent to {phone} via {config.provider} ({result.message_id})")
    else:
        logger.warning(f"WhatsApp message to {phone} rejected by {config.provider}: {result.error}")
    return result


def _json_or_empty(resp):
    """Response body as a dict; anything else (list, scalar, non-JSON) is {}."""
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _send_via_twilio(config, to, message):
    url = TWILIO_API_URL.format(sid=config.twilio_account_sid)
    resp = requests.post(
        url,
        data={
            "From": config.twilio_whatsapp_number,
            "To": f"whatsapp:{to}",
            "Body": message,
        },
        auth=(config.twilio_account_sid, config.twilio_auth_token),
        timeout=15,
    )
    body = _json_or_empty(resp)
    if resp.ok:
        return ChannelResult(channel="whatsapp", success=True, message_id=body.get("sid"))
    return ChannelResult(
        channel="whatsapp",
        success=False,
        error=body.get("message") or "Failed to send via Twilio",
    )


def _send_via_business_api(config, to, message):
    url = GRAPH_API_URL.format(phone_number_id=config.business_phone_number_id)
    resp = requests.post(
        url,
        json={
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": message},
        },
        headers={"Authorization": f"Bearer {config.business_access_token}"},
        timeout=15,
    )
    body = _json_or_empty(resp)
    if resp.ok:
        messages = body.get("messages") or [{}]
        return ChannelResult(channel="whatsapp", success=True, message_id=messages[0].get("id"))
    error = (body.get("error") or {}).get("message")
    return ChannelResult(
        channel="whatsapp",
        success=False,
        error=error or "Failed to send via WhatsApp Business API",
    )


def _send_via_custom_webhook(config, to, message):
    resp = requests.post(
        config.webhook_url,
        json={
            "to": to,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        headers={"Authorization": f"Bearer {config.webhook_api_key}"},
        timeout=15,
    )
    body = _json_or_empty(resp)
    if resp.ok:
        return ChannelResult(
            channel="whatsapp",
            success=True,
            message_id=body.get("messageId") or body.get("id"),
        )
    return ChannelResult(
        channel="whatsapp",
        success=False,
        error=body.get("error") or "Failed to send via custom webhook",
    )
