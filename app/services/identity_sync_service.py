"""Identity sync service — Clerk webhook verification and handling.

Responsible for:
- Verifying svix signatures on incoming Clerk webhooks
- Idempotency via the webhook_events table
- Keeping Account rows in step with Clerk users:
    user.created  -> create Account (role=user) or link an existing one
    user.updated  -> refresh name/phone/email (by clerk_user_id, then email)
    user.deleted  -> deactivate the Account (rows are never deleted)
"""

import json
import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from svix.webhooks import Webhook

from app.extensions import db
from app.models.account import Account
from app.models.audit import AuditEvent
from app.models.webhook_event import WebhookEvent
from app.services.identity_service import identity_from_payload

logger = logging.getLogger(__name__)

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


def verify_webhook_signature(payload, headers):
    """Verify a Clerk (svix) webhook and return the decoded event.

    Raises svix.webhooks.WebhookVerificationError on a bad signature and
    ValueError if the verified body is not a JSON object.
    """
    webhook = Webhook(current_app.config["CLERK_WEBHOOK_SECRET"])
    # svix 1.x returns the parsed body, 2.x returns None: decode it ourselves
    webhook.verify(payload, {name: headers.get(name) for name in SVIX_HEADERS})
    event = json.loads(payload)
    if not isinstance(event, dict):
        raise ValueError("Webhook payload is not a JSON object")
    return event


def handle_webhook_event(message_id, event):
    """Process a verified Clerk event.

    Returns (success: bool, message: str).
    """
    event_type = event.get("type")

    # --- Idempotency check ---
    existing = WebhookEvent.query.filter_by(message_id=message_id).first()
    if existing:
        logger.info(f"Duplicate webhook {message_id}, skipping")
        return True, "already_processed"

    handlers = {
        "user.created": _handle_user_created,
        "user.updated": _handle_user_updated,
        "user.deleted": _handle_user_deleted,
    }

    handler = handlers.get(event_type)
    try:
        if handler:
            handler(event.get("data") or {})
        db.session.add(WebhookEvent(message_id=message_id, event_type=event_type or "unknown"))
        db.session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error handling {event_type}: {e}", exc_info=True)
        db.session.rollback()
        return False, str(e)

    return True, "processed"


def _handle_user_created(data):
    identity = identity_from_payload(data)
    if not identity.email:
        logger.warning(f"Clerk user {identity.id} has no email — not synced")
        return

    account = Account.query.filter_by(email=identity.email).first()
    if account is None:
        account = Account(
            email=identity.email,
            clerk_user_id=identity.id,
            full_name=identity.full_name,
            phone=identity.phone,
            role="user",
        )
        db.session.add(account)
        db.session.flush()
        logger.info(f"Account {account.id} created for Clerk user {identity.id}")
    else:
        # Account pre-created by an invite or approval: link it
        account.clerk_user_id = identity.id
        account.is_active = True
        logger.info(f"Linked existing account {account.id} to Clerk user {identity.id}")

    db.session.add(AuditEvent(
        actor_account_id=account.id,
        action="identity.user_created",
        metadata_={"clerk_user_id": identity.id, "email": identity.email},
    ))


def _handle_user_updated(data):
    identity = identity_from_payload(data)

    account = Account.query.filter_by(clerk_user_id=identity.id).first()
    if account is None and identity.email:
        account = Account.query.filter_by(email=identity.email).first()
    if account is None:
        logger.info(f"No account for updated Clerk user {identity.id} — ignored")
        return

    account.full_name = identity.full_name
    if identity.phone:
        account.phone = identity.phone
    if account.clerk_user_id is None:
        account.clerk_user_id = identity.id

    # Primary email changed in Clerk
    if identity.email and identity.email != account.email:
        taken = Account.query.filter(
            Account.email == identity.email, Account.id != account.id
        ).first()
        if taken is not None:
            logger.warning(
                f"Clerk user {identity.id} changed email to {identity.email}, "
                f"already used by account {taken.id}: email not synced"
            )
        else:
            logger.info(f"Account {account.id} email {account.email} -> {identity.email}")
            account.email = identity.email


def _handle_user_deleted(data):
    clerk_user_id = data.get("id")
    account = Account.query.filter_by(clerk_user_id=clerk_user_id).first()
    if account is None:
        logger.info(f"No account for deleted Clerk user {clerk_user_id} — ignored")
        return

    account.is_active = False
    db.session.add(AuditEvent(
        actor_account_id=account.id,
        action="identity.user_deleted",
        metadata_={"clerk_user_id": clerk_user_id, "email": account.email},
    ))
    logger.info(f"Account {account.id} deactivated (Clerk user {clerk_user_id} deleted)")
