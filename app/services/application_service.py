"""Application service — dealer application intake and status lookups.

- submit_application: signed-up user files a pending application
- dealer_status: what the dealer portal should show the caller
- list_applications: admin review queue

All free-text input is sanitized with bleach.clean() to strip HTML tags.
"""

import logging

import bleach
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.account import Account
from app.models.audit import AuditEvent
from app.models.dealer_application import DealerApplication
from app.services import notification_service
from app.services.errors import Conflict, Invalid, StoreFailure

logger = logging.getLogger(__name__)

# request key -> (column, required)
APPLICATION_FIELDS = {
    "businessName": ("business_name", True),
    "contactPerson": ("contact_person", True),
    "phone": ("phone", True),
    "address": ("address", True),
    "businessType": ("business_type", True),
    "whatsapp": ("whatsapp", False),
    "vatPan": ("vat_pan", False),
    "yearsInBusiness": ("years_in_business", False),
    "message": ("message", False),
}

MAX_MESSAGE_LENGTH = 5000


def _sanitize(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return None
    return bleach.clean(str(text), tags=[], strip=True).strip() or None


def latest_application_for(email):
    return (
        DealerApplication.query
        .filter_by(email=email.lower().strip())
        .order_by(DealerApplication.created_at.desc())
        .first()
    )


def submit_application(identity, data):
    """Create a pending application for the signed-in caller.

    The email always comes from the caller's identity, never the body,
    so approval can later match the application to that identity.

    Raises:
        Invalid: required fields missing or message too long.
        Conflict: caller already has a pending or approved application.
        StoreFailure: insert failed.
    """
    values = {}
    missing = []
    for key, (column, required) in APPLICATION_FIELDS.items():
        value = _sanitize(data.get(key))
        if required and not value:
            missing.append(key)
        values[column] = value

    if missing:
        raise Invalid(
            "Please fill in all required fields",
            details={"missing": missing},
        )
    if values["message"] and len(values["message"]) > MAX_MESSAGE_LENGTH:
        raise Invalid("Message is too long.")

    # WhatsApp defaults to the contact phone
    values["whatsapp"] = values["whatsapp"] or values["phone"]

    email = identity.email.lower().strip()
    existing = (
        DealerApplication.query
        .filter(
            DealerApplication.email == email,
            DealerApplication.status != "rejected",
        )
        .first()
    )
    if existing is not None:
        raise Conflict(
            "You have already submitted a dealer application. Please wait for admin review.",
            status_code=409,
        )

    application = DealerApplication(email=email, status="pending", **values)
    try:
        db.session.add(application)
        db.session.flush()

        account = Account.query.filter_by(email=email).first()
        db.session.add(AuditEvent(
            actor_account_id=account.id if account else None,
            action="dealer_application.submitted",
            metadata_={
                "application_id": application.id,
                "email": email,
                "business_name": application.business_name,
            },
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to store dealer application for {email}: {e}")
        raise StoreFailure("Failed to submit application") from e

    logger.info(f"Dealer application {application.id} submitted by {email}")

    dispatcher = notification_service.get_dispatcher()
    dispatcher.dispatch(
        notification_service.owner_new_application_notice(application, dispatcher.config)
    )
    dispatcher.dispatch(notification_service.application_received_notice(application))
    return application


def dealer_status(identity, account):
    """Summarize the caller's dealer standing for the portal UI.

    Args:
        identity: caller's ExternalIdentity.
        account: caller's Account row, or None if not synced yet.
    """
    is_approved = bool(account and account.is_approved_dealer)

    has_application = False
    application_status = None
    if not is_approved:
        application = latest_application_for(identity.email)
        if application is not None:
            has_application = True
            application_status = application.status

    status = {
        "isApprovedDealer": is_approved,
        "needsApplication": not is_approved and not has_application,
        "hasApplication": has_application,
        "applicationStatus": application_status,
        "user": None,
    }

    if account is not None:
        status["user"] = {**account.to_dict(), "id": identity.id}

    if has_application and application_status == "pending":
        status["message"] = (
            "Your dealer application is pending. Please wait for admin approval."
        )
    elif status["needsApplication"]:
        status["message"] = "Please complete your dealer application to continue."
    return status


def list_applications(status=None):
    """Admin review queue, newest first."""
    query = DealerApplication.query
    if status:
        if status not in DealerApplication.STATUSES:
            raise Invalid(
                f"Invalid status '{status}'. Must be one of: "
                f"{', '.join(DealerApplication.STATUSES)}"
            )
        query = query.filter_by(status=status)
    return query.order_by(DealerApplication.created_at.desc()).all()
