"""Reconciliation service — approve / reject dealer applications.

Approval merges an application into the applicant's Account row, creating
it when absent. The status guard is a conditional UPDATE
(... WHERE status = 'pending') executed in the same transaction as the
account write, so of two concurrent approvals exactly one wins and the
other gets Conflict. Account creation recovers from a duplicate-key race
by rolling back to a savepoint and updating the row that won.

Notifications are dispatched after commit and never fail the request.
"""

import logging
from datetime import datetime, timezone

import bleach
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.extensions import db
from app.models.account import Account
from app.models.audit import AuditEvent
from app.models.dealer_application import DealerApplication
from app.services import identity_service, notification_service
from app.services.errors import (
    Conflict,
    IdentityProviderError,
    Invalid,
    NotFound,
    StoreFailure,
)

logger = logging.getLogger(__name__)


def _sanitize(text):
    """Strip all HTML tags from admin input."""
    if text is None:
        return text
    return bleach.clean(text, tags=[], strip=True).strip()


def _db_error_message(error):
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)


def get_application(application_id):
    application = db.session.get(DealerApplication, application_id)
    if application is None:
        raise NotFound("Application not found")
    return application


def _ensure_pending(application):
    if not application.is_pending:
        raise Conflict("Application has already been processed")


def find_account_by_email(email):
    return Account.query.filter_by(email=email.lower().strip()).first()


def find_account_by_clerk_id(clerk_user_id):
    if not clerk_user_id:
        return None
    return Account.query.filter_by(clerk_user_id=clerk_user_id).first()


def _claim_application(application_id, new_status, reviewer_id, **values):
    """Move a pending application to new_status.

    Returns False if another request got there first (status no longer
    pending), in which case nothing was written.
    """
    now = datetime.now(timezone.utc)
    result = db.session.execute(
        update(DealerApplication)
        .where(
            DealerApplication.id == application_id,
            DealerApplication.status == "pending",
        )
        .values(
            status=new_status,
            reviewed_by_account_id=reviewer_id,
            reviewed_at=now,
            updated_at=now,
            **values,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _dealer_fields(application, identity):
    """Account fields an approval overlays from the application."""
    return {
        "full_name": application.contact_person,
        "business_name": application.business_name,
        "phone": application.phone or None,
        "address": application.address or None,
        "vat_pan": application.vat_pan or None,
        "whatsapp": application.whatsapp or None,
        "business_type": application.business_type or None,
        "role": "dealer",
        "dealer_status": "approved",
        "clerk_user_id": identity.id,
    }


def _overlay(account, fields):
    for name, value in fields.items():
        setattr(account, name, value)
    account.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    return account


def upsert_dealer_account(email, fields):
    """Update the matching Account in place, or create it.

    Matches by email first, then by fields["clerk_user_id"] (the user
    changed their Clerk email since the account was synced), in which case
    the account takes the new email.

    Must run inside the caller's transaction; flushes but does NOT commit.
    """
    email = email.lower().strip()
    clerk_user_id = fields.get("clerk_user_id")

    account = find_account_by_email(email)
    if account is not None:
        return _overlay(account, fields)

    account = find_account_by_clerk_id(clerk_user_id)
    if account is not None:
        logger.info(
            f"Account {account.id} matched by Clerk user {clerk_user_id}; "
            f"email {account.email} -> {email}"
        )
        return _overlay(account, {**fields, "email": email})

    account = Account(email=email, **fields)
    try:
        with db.session.begin_nested():
            db.session.add(account)
    except IntegrityError:
        # A concurrent request created the row between our lookup and insert
        existing = find_account_by_email(email)
        if existing is None:
            existing = find_account_by_clerk_id(clerk_user_id)
            if existing is None:
                raise
            fields = {**fields, "email": email}
        logger.warning(
            f"Duplicate account insert for {email}: "
            f"recovering by updating account {existing.id}"
        )
        return _overlay(existing, fields)

    logger.info(f"Created dealer account {account.id} for {account.email}")
    return account


def reconcile_account(application, identity):
    """Merge an application into the applicant's Account (flush only)."""
    return upsert_dealer_account(
        application.email, _dealer_fields(application, identity)
    )


def approve_application(application_id, reviewer):
    """Approve a pending application and reconcile the dealer's Account.

    Args:
        application_id: DealerApplication UUID string.
        reviewer: the admin Account performing the approval.

    Returns:
        tuple: (account, application)

    Raises:
        NotFound, Conflict, Invalid, IdentityProviderError, StoreFailure
    """
    application = get_application(application_id)
    _ensure_pending(application)

    # The applicant must have signed up already; approval never creates
    # an external identity (see invite_service for that flow).
    try:
        identity = identity_service.find_user_by_email(application.email)
    except IdentityProviderError as e:
        logger.error(f"Identity lookup failed for {application.email}: {e}")
        raise IdentityProviderError("Error finding user account") from e
    if identity is None:
        raise Invalid("User account not found. Please ask the user to sign up first.")

    try:
        if not _claim_application(application_id, "approved", reviewer.id):
            db.session.rollback()
            raise Conflict("Application has already been processed")

        account = reconcile_account(application, identity)

        db.session.add(AuditEvent(
            actor_account_id=reviewer.id,
            action="dealer_application.approved",
            metadata_={
                "application_id": application_id,
                "account_id": account.id,
                "email": application.email,
                "clerk_user_id": identity.id,
            },
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to reconcile dealer record for {application_id}: {e}")
        raise StoreFailure(
            f"Failed to reconcile dealer record: {_db_error_message(e)}"
        ) from e

    logger.info(
        f"Application {application_id} approved by {reviewer.email} — "
        f"dealer account {account.id}"
    )

    notification_service.get_dispatcher().dispatch(
        notification_service.approval_notice(application)
    )
    return account, application


def reject_application(application_id, reviewer, reason=None):
    """Reject a pending application. No Account is touched.

    Returns:
        tuple: (application, reason)

    Raises:
        NotFound, Conflict, StoreFailure
    """
    application = get_application(application_id)
    _ensure_pending(application)

    reason = _sanitize(reason) or DealerApplication.DEFAULT_REJECTION_REASON

    try:
        if not _claim_application(
            application_id, "rejected", reviewer.id, rejection_reason=reason
        ):
            db.session.rollback()
            raise Conflict("Application has already been processed")

        db.session.add(AuditEvent(
            actor_account_id=reviewer.id,
            action="dealer_application.rejected",
            metadata_={
                "application_id": application_id,
                "email": application.email,
                "reason": reason,
            },
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to reject application {application_id}: {e}")
        raise StoreFailure("Failed to update application status") from e

    logger.info(f"Application {application_id} rejected by {reviewer.email}: {reason}")

    notification_service.get_dispatcher().dispatch(
        notification_service.rejection_notice(application, reason)
    )
    return application, reason
