"""Admin blueprint — /api/admin/*

Dealer application review and dealer onboarding. JSON in, JSON out.
All routes except check-status are protected by @admin_required.

Route Map:
  POST /api/admin/approve-dealer          — Approve application, reconcile Account
  POST /api/admin/reject-dealer           — Reject application
  POST /api/admin/invite-dealer           — Create Clerk user + approved dealer
  GET  /api/admin/dealer-applications     — Review queue (?status=pending)
  GET  /api/admin/check-status            — Is the caller an admin?
  GET  /api/admin/notifications/status    — Email / WhatsApp channel config
"""

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from app.decorators import admin_required, caller_required
from app.extensions import limiter
from app.services import (
    application_service,
    email_service,
    invite_service,
    notification_service,
    reconciliation_service,
)
from app.services.errors import DealerPortalError

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _error(e):
    return jsonify(e.to_dict()), e.status_code


# ══════════════════════════════════════════════
#  APPLICATION REVIEW
# ══════════════════════════════════════════════

@admin_bp.route("/approve-dealer", methods=["POST"])
@admin_required
def approve_dealer():
    """Approve a pending dealer application.

    Body: { applicationId }
    """
    data = request.get_json(silent=True) or {}
    application_id = data.get("applicationId")
    if not application_id:
        return jsonify({"error": "Application ID is required"}), 400

    try:
        account, application = reconciliation_service.approve_application(
            str(application_id), current_user
        )
    except DealerPortalError as e:
        logger.info(f"Approve {application_id} refused: {e.message}")
        return _error(e)

    return jsonify({
        "success": True,
        "message": "Dealer application approved successfully",
        "dealerId": account.id,
        "dealerInfo": {
            "email": application.email,
            "businessName": application.business_name,
            "contactPerson": application.contact_person,
        },
    })


@admin_bp.route("/reject-dealer", methods=["POST"])
@admin_required
def reject_dealer():
    """Reject a pending dealer application.

    Body: { applicationId, reason? }
    """
    data = request.get_json(silent=True) or {}
    application_id = data.get("applicationId")
    if not application_id:
        return jsonify({"error": "Application ID is required"}), 400

    try:
        reconciliation_service.reject_application(
            str(application_id), current_user, reason=data.get("reason")
        )
    except DealerPortalError as e:
        logger.info(f"Reject {application_id} refused: {e.message}")
        return _error(e)

    return jsonify({
        "success": True,
        "message": "Dealer application rejected successfully",
    })


@admin_bp.route("/dealer-applications")
@admin_required
def dealer_applications():
    """List applications, newest first. Optional ?status= filter."""
    try:
        applications = application_service.list_applications(
            request.args.get("status")
        )
    except DealerPortalError as e:
        return _error(e)

    return jsonify({
        "applications": [a.to_dict() for a in applications],
        "count": len(applications),
    })


# ══════════════════════════════════════════════
#  INVITES
# ══════════════════════════════════════════════

@admin_bp.route("/invite-dealer", methods=["POST"])
@admin_required
@limiter.limit("30 per hour")
def invite_dealer():
    """Create a Clerk user and an approved dealer Account in one step."""
    data = request.get_json(silent=True) or {}

    try:
        account, identity = invite_service.invite_dealer(data, current_user)
    except DealerPortalError as e:
        return _error(e)

    return jsonify({
        "success": True,
        "message": "Dealer invited successfully",
        "dealerId": account.id,
        "clerkUserId": identity.id,
    })


# ══════════════════════════════════════════════
#  DIAGNOSTICS
# ══════════════════════════════════════════════

@admin_bp.route("/check-status")
@caller_required
def check_status():
    identity = g.caller_identity
    account = current_user if current_user.is_authenticated else None
    return jsonify({
        "isAdmin": bool(account and account.is_admin),
        "user": {
            "id": identity.id,
            "email": identity.email,
            "name": identity.full_name,
            "role": account.role if account else None,
        },
    })


@admin_bp.route("/notifications/status")
@admin_required
def notifications_status():
    config = notification_service.get_dispatcher().config
    whatsapp = config.whatsapp.status()
    whatsapp["ownerNumberConfigured"] = bool(config.owner_whatsapp)
    return jsonify({
        "email": {"configured": email_service.is_configured()},
        "whatsapp": whatsapp,
    })
