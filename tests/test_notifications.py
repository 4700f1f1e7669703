"""Tests for the notification dispatcher and its channels.

Covers:
- WhatsAppConfig resolution and is_configured per provider
- send_message against each provider (requests.post patched)
- Phone normalization
- Dispatcher: email logged when SMTP is unconfigured, never raises,
  skips disabled WhatsApp, reports per-channel results
- Provider replies that are not JSON objects never escape the dispatcher
- Admin notifications status endpoint
"""

from unittest.mock import MagicMock, patch

import requests

from app.services import email_service, whatsapp_service
from app.services.notification_service import (
    Notification,
    NotificationConfig,
    NotificationDispatcher,
    get_dispatcher,
)
from app.services.whatsapp_service import WhatsAppConfig


TWILIO = WhatsAppConfig(
    enabled=True,
    provider="twilio",
    twilio_account_sid="AC123",
    twilio_auth_token="secret",
    twilio_whatsapp_number="whatsapp:+14155238886",
)
BUSINESS = WhatsAppConfig(
    enabled=True,
    provider="whatsapp-business",
    business_access_token="EAAB",
    business_phone_number_id="1098765",
)
CUSTOM = WhatsAppConfig(
    enabled=True,
    provider="custom-webhook",
    webhook_url="https://relay.example/send",
    webhook_api_key="relay-key",
)


def _response(status=200, body=None):
    resp = MagicMock()
    resp.ok = status < 400
    resp.status_code = status
    resp.json.return_value = body or {}
    return resp


def _notification(**overrides):
    values = {
        "kind": "dealer_approved",
        "subject": "Approved",
        "context": {"contact_person": "Ram Thapa", "business_name": "Himalaya Traders"},
        "email": "ram@himalayatraders.com",
        "phone": "+977-9801234567",
    }
    values.update(overrides)
    return Notification(**values)


class TestWhatsAppConfig:
    def test_disabled_is_not_configured(self):
        assert WhatsAppConfig(enabled=False).is_configured is False

    def test_twilio_needs_all_credentials(self):
        assert TWILIO.is_configured is True
        partial = WhatsAppConfig(enabled=True, provider="twilio", twilio_account_sid="AC1")
        assert partial.is_configured is False

    def test_unknown_provider_is_not_configured(self):
        assert WhatsAppConfig(enabled=True, provider="pigeon").is_configured is False

    def test_from_app_config(self):
        config = WhatsAppConfig.from_app_config({
            "WHATSAPP_ENABLED": True,
            "WHATSAPP_PROVIDER": "custom-webhook",
            "WHATSAPP_WEBHOOK_URL": "https://relay.example/send",
            "WHATSAPP_WEBHOOK_API_KEY": "k",
        })
        assert config.is_configured is True
        assert config.status() == {
            "enabled": True,
            "provider": "custom-webhook",
            "configured": True,
        }

    def test_normalize_phone(self):
        assert whatsapp_service.normalize_phone("+977 (980) 123-4567") == "+9779801234567"
        assert whatsapp_service.normalize_phone(None) == ""


class TestSendMessage:
    def test_disabled_is_skipped(self):
        result = whatsapp_service.send_message(WhatsAppConfig(), "+9779801234567", "hi")
        assert result.success is False
        assert result.skipped is True

    def test_missing_phone_is_skipped(self):
        result = whatsapp_service.send_message(TWILIO, "", "hi")
        assert result.skipped is True

    @patch("app.services.whatsapp_service.requests.post")
    def test_twilio(self, mock_post):
        mock_post.return_value = _response(201, {"sid": "SM1"})

        result = whatsapp_service.send_message(TWILIO, "+977-9801234567", "hello")

        assert result.success is True
        assert result.message_id == "SM1"
        args, kwargs = mock_post.call_args
        assert "AC123" in args[0]
        assert kwargs["data"]["To"] == "whatsapp:+9779801234567"
        assert kwargs["auth"] == ("AC123", "secret")

    @patch("app.services.whatsapp_service.requests.post")
    def test_twilio_error(self, mock_post):
        mock_post.return_value = _response(400, {"message": "Invalid To number"})

        result = whatsapp_service.send_message(TWILIO, "+9779801234567", "hello")

        assert result.success is False
        assert result.error == "Invalid To number"

    @patch("app.services.whatsapp_service.requests.post")
    def test_business_api(self, mock_post):
        mock_post.return_value = _response(200, {"messages": [{"id": "wamid.1"}]})

        result = whatsapp_service.send_message(BUSINESS, "+9779801234567", "hello")

        assert result.success is True
        assert result.message_id == "wamid.1"
        args, kwargs = mock_post.call_args
        assert "1098765" in args[0]
        assert kwargs["json"]["text"] == {"body": "hello"}
        assert kwargs["headers"]["Authorization"] == "Bearer EAAB"

    @patch("app.services.whatsapp_service.requests.post")
    def test_custom_webhook(self, mock_post):
        mock_post.return_value = _response(200, {"messageId": "m-1"})

        result = whatsapp_service.send_message(CUSTOM, "+9779801234567", "hello")

        assert result.success is True
        assert result.message_id == "m-1"
        assert mock_post.call_args.args[0] == "https://relay.example/send"

    @patch("app.services.whatsapp_service.requests.post")
    def test_transport_error_does_not_raise(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("no route to host")

        result = whatsapp_service.send_message(CUSTOM, "+9779801234567", "hello")

        assert result.success is False
        assert "no route to host" in result.error

    @patch("app.services.whatsapp_service.requests.post")
    def test_non_object_json_body_does_not_raise(self, mock_post):
        mock_post.return_value = _response(200, ["queued"])

        result = whatsapp_service.send_message(CUSTOM, "+9779801234567", "hello")

        assert result.success is True
        assert result.message_id is None

    @patch("app.services.whatsapp_service.requests.post")
    def test_non_object_json_error_body_does_not_raise(self, mock_post):
        mock_post.return_value = _response(502, "Bad Gateway")

        result = whatsapp_service.send_message(BUSINESS, "+9779801234567", "hello")

        assert result.success is False
        assert result.error == "Failed to send via WhatsApp Business API"

    @patch("app.services.whatsapp_service.requests.post")
    def test_unexpected_error_does_not_raise(self, mock_post):
        mock_post.return_value.ok = True
        mock_post.return_value.json.side_effect = TypeError("unexpected body")

        result = whatsapp_service.send_message(TWILIO, "+9779801234567", "hello")

        assert result.success is False
        assert result.error == "unexpected body"


class TestDispatcher:
    def _dispatcher(self, app, whatsapp=None):
        config = NotificationConfig(
            company_name="Jeen Mata Impex",
            app_base_url="http://localhost:5000",
            owner_email="owner@jeenmata.test",
            owner_whatsapp="+977-9876543210",
            whatsapp=whatsapp or WhatsAppConfig(),
        )
        return NotificationDispatcher(config)

    def test_app_dispatcher_is_configured_once(self, app):
        dispatcher = get_dispatcher()
        assert dispatcher is app.extensions["notifications"]
        assert dispatcher.config.owner_email == "owner@jeenmata.test"
        assert dispatcher.config.whatsapp.is_configured is False

    def test_email_logged_when_smtp_unconfigured(self, app):
        result = self._dispatcher(app).dispatch(_notification())

        email_result = result.results[0]
        assert email_result.channel == "email"
        assert email_result.success is True
        assert result.success is True

    def test_whatsapp_skipped_when_disabled(self, app):
        result = self._dispatcher(app).dispatch(_notification())

        whatsapp_result = result.results[1]
        assert whatsapp_result.channel == "whatsapp"
        assert whatsapp_result.skipped is True
        assert result.errors == []

    @patch("app.services.whatsapp_service.requests.post")
    def test_whatsapp_sent_when_configured(self, mock_post, app):
        mock_post.return_value = _response(200, {"messageId": "m-2"})

        result = self._dispatcher(app, whatsapp=CUSTOM).dispatch(_notification())

        assert result.results[1].success is True
        sent_text = mock_post.call_args.kwargs["json"]["message"]
        assert "Himalaya Traders" in sent_text

    def test_whatsapp_exception_never_raises(self, app):
        with patch.object(
            whatsapp_service, "send_message", side_effect=AttributeError("no get")
        ):
            result = self._dispatcher(app, whatsapp=CUSTOM).dispatch(_notification())

        assert result.results[0].success is True
        assert result.results[1].channel == "whatsapp"
        assert result.results[1].success is False
        assert result.errors == ["no get"]

    def test_email_exception_never_raises(self, app):
        with patch.object(email_service, "send_email", side_effect=RuntimeError("boom")):
            result = self._dispatcher(app).dispatch(_notification(phone=None))

        assert result.success is False
        assert result.errors == ["boom"]

    def test_smtp_failure_reported(self, app):
        with patch.object(email_service, "send_email", return_value=email_service.FAILED):
            result = self._dispatcher(app).dispatch(_notification(phone=None))

        assert result.success is False
        assert result.errors == ["SMTP delivery failed"]

    def test_no_recipients(self, app):
        result = self._dispatcher(app).dispatch(_notification(email=None, phone=None))
        assert result.results == []
        assert result.success is False

    def test_every_template_renders(self, app):
        dispatcher = self._dispatcher(app)
        for kind in (
            "dealer_approved",
            "dealer_rejected",
            "application_received",
            "owner_new_application",
            "dealer_invited",
        ):
            notification = _notification(
                kind=kind,
                phone=None,
                context={
                    "contact_person": "Ram Thapa",
                    "business_name": "Himalaya Traders",
                    "reason": "Incomplete documents",
                    "email": "ram@himalayatraders.com",
                    "phone": "+977-9801234567",
                    "address": "New Road, Kathmandu",
                    "business_type": "Retailer",
                },
            )
            assert dispatcher.dispatch(notification).success is True, kind


class TestEmailService:
    def test_logged_when_unconfigured(self, app):
        outcome = email_service.send_email(
            to="ram@himalayatraders.com",
            subject="Approved",
            template="emails/dealer_approved.txt",
            context={"contact_person": "Ram", "business_name": "HT",
                     "company_name": "Jeen Mata Impex", "app_base_url": "http://x"},
        )
        assert outcome == email_service.LOGGED

    @patch("app.services.email_service.smtplib.SMTP")
    def test_sent_when_configured(self, mock_smtp, app):
        with patch.dict(app.config, {"MAIL_USERNAME": "u", "MAIL_PASSWORD": "p"}):
            outcome = email_service.send_email(
                to="ram@himalayatraders.com",
                subject="Approved",
                template="emails/dealer_approved.txt",
                context={"contact_person": "Ram", "business_name": "HT",
                         "company_name": "Jeen Mata Impex", "app_base_url": "http://x"},
            )
        assert outcome == email_service.SENT
        server = mock_smtp.return_value.__enter__.return_value
        server.login.assert_called_once_with("u", "p")
        server.send_message.assert_called_once()


class TestNotificationsStatusEndpoint:
    def test_status(self, client, seed_data):
        resp = client.get(
            "/api/admin/notifications/status", headers=seed_data["admin_headers"]
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["email"] == {"configured": False}
        assert data["whatsapp"]["enabled"] is False
        assert data["whatsapp"]["configured"] is False
        assert data["whatsapp"]["ownerNumberConfigured"] is True
