"""Dealers blueprint — /api/dealers/*

Self-service endpoints for signed-in users. The caller only needs a valid
Clerk session; the Account row may not exist yet.

Route Map:
  POST /api/dealers/applications   — Submit a dealer application
  GET  /api/dealers/check-status   — Dealer standing for the portal UI
"""

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from app.decorators import caller_required
from app.extensions import limiter
from app.services import application_service
from app.services.errors import DealerPortalError

logger = logging.getLogger(__name__)

dealers_bp = Blueprint("dealers", __name__, url_prefix="/api/dealers")


@dealers_bp.route("/applications", methods=["POST"])
@limiter.limit("5 per hour")
@caller_required
def submit_application():
    """Submit a dealer application for the signed-in caller.

    Body: { businessName, contactPerson, phone, address, businessType,
            whatsapp?, vatPan?, yearsInBusiness?, message? }

    Returns 201 { success, applicationId, message }.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid request."}), 400

    try:
        application = application_service.submit_application(
            g.caller_identity, data
        )
    except DealerPortalError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "success": True,
        "applicationId": application.id,
        "message": "Application submitted successfully. We will review it shortly.",
    }), 201


@dealers_bp.route("/check-status")
@caller_required
def check_status():
    account = current_user if current_user.is_authenticated else None
    return jsonify(application_service.dealer_status(g.caller_identity, account))
