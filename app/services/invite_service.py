"""Invite service — admin-initiated dealer onboarding.

Unlike approval, an invite creates the external identity itself:
1. refuse if the email already has a Clerk user
2. create the Clerk user (passwordless)
3. create or overlay the Account as an approved dealer
4. if the store write fails, delete the Clerk user again

The Clerk delete is compensation, not a transaction: if it also fails the
orphaned identity is logged for manual cleanup.
"""

import logging

import bleach
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.audit import AuditEvent
from app.services import identity_service, notification_service
from app.services.errors import IdentityProviderError, Invalid, StoreFailure
from app.services.reconciliation_service import upsert_dealer_account

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("email", "businessName", "contactPerson")


def _clean(value):
    if value is None:
        return None
    return bleach.clean(str(value), tags=[], strip=True).strip() or None


def split_name(full_name):
    """'Ram Bahadur Thapa' -> ('Ram', 'Bahadur Thapa')."""
    parts = (full_name or "").split()
    if not parts:
        return None, None
    return parts[0], " ".join(parts[1:]) or None


def invite_dealer(data, inviter):
    """Create a Clerk identity and an approved dealer Account.

    Args:
        data: request body with email, businessName, contactPerson, phone,
              address, businessType, message.
        inviter: the admin Account sending the invite.

    Returns:
        tuple: (account, identity)

    Raises:
        Invalid: missing fields or the identity already exists.
        IdentityProviderError: Clerk lookup/creation failed.
        StoreFailure: the Account write failed (Clerk user rolled back).
    """
    cleaned = {key: _clean(data.get(key)) for key in (
        "email", "businessName", "contactPerson", "phone",
        "address", "businessType", "message",
    )}
    missing = [key for key in REQUIRED_FIELDS if not cleaned[key]]
    if missing:
        raise Invalid(
            "Email, business name and contact person are required",
            details={"missing": missing},
        )

    email = cleaned["email"].lower()

    if identity_service.find_user_by_email(email) is not None:
        raise Invalid("A user with this email already exists")

    first_name, last_name = split_name(cleaned["contactPerson"])
    identity = identity_service.create_user(
        email, first_name=first_name, last_name=last_name
    )

    try:
        account = upsert_dealer_account(email, {
            "full_name": cleaned["contactPerson"],
            "business_name": cleaned["businessName"],
            "phone": cleaned["phone"],
            "whatsapp": cleaned["phone"],
            "address": cleaned["address"],
            "business_type": cleaned["businessType"],
            "role": "dealer",
            "dealer_status": "approved",
            "clerk_user_id": identity.id,
        })
        db.session.add(AuditEvent(
            actor_account_id=inviter.id,
            action="dealer.invited",
            metadata_={
                "account_id": account.id,
                "email": email,
                "clerk_user_id": identity.id,
                "message": cleaned["message"],
            },
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Dealer record for invited {email} failed, rolling back Clerk user: {e}")
        try:
            identity_service.delete_user(identity.id)
        except IdentityProviderError as cleanup_error:
            logger.error(
                f"Could not delete orphaned Clerk user {identity.id} ({email}): {cleanup_error}"
            )
        raise StoreFailure(
            "Failed to create dealer record",
            details=str(getattr(e, "orig", e)),
        ) from e

    logger.info(f"Dealer {email} invited by {inviter.email} — account {account.id}")

    notification_service.get_dispatcher().dispatch(
        notification_service.dealer_invited_notice(account)
    )
    return account, identity
