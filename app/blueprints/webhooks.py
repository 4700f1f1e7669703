"""Webhooks blueprint — /api/webhooks/clerk

Receives Clerk user events, delivered and signed by svix.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, request, jsonify
from svix.webhooks import WebhookVerificationError

from app.services.identity_sync_service import (
    SVIX_HEADERS,
    handle_webhook_event,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.route("/clerk", methods=["POST"])
def clerk_webhook():
    """Receive and process Clerk webhook events.

    1. Get raw body (required for signature verification)
    2. Verify svix signature with CLERK_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via webhook_events table)
    4. Return 200 to acknowledge receipt
    """
    payload = request.get_data(as_text=True)

    if not all(request.headers.get(name) for name in SVIX_HEADERS):
        logger.warning("Webhook received without svix headers")
        return jsonify({"error": "Missing svix headers"}), 400

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, request.headers)
    except WebhookVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return jsonify({"error": "Invalid signature"}), 400
    except ValueError as e:
        logger.warning(f"Webhook payload rejected: {e}")
        return jsonify({"error": "Invalid payload"}), 400

    # --- Process event (idempotent) ---
    success, message = handle_webhook_event(request.headers["svix-id"], event)

    if success:
        return jsonify({"status": message}), 200
    else:
        logger.error(f"Webhook processing failed: {message}")
        return jsonify({"error": message}), 500
