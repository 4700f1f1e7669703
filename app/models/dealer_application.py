"""Dealer application model.

A request to become a dealer, submitted by a signed-up user before any
dealer account exists. Matched to its Account by email (no foreign key).
Status moves pending -> approved or pending -> rejected, never back.
"""

import uuid

from app.extensions import db


class DealerApplication(db.Model):
    __tablename__ = "dealer_applications"

    STATUSES = ["pending", "approved", "rejected"]

    DEFAULT_REJECTION_REASON = "Application did not meet our requirements"

    __table_args__ = (
        db.Index("ix_dealer_applications_status", "status"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    business_name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=False)
    whatsapp = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=False)
    vat_pan = db.Column(db.String(100), nullable=True)
    business_type = db.Column(db.String(100), nullable=False)
    years_in_business = db.Column(db.String(50), nullable=True)
    message = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), default="pending", nullable=False
    )  # pending | approved | rejected
    rejection_reason = db.Column(db.Text, nullable=True)
    reviewed_by_account_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    reviewed_by = db.relationship("Account", foreign_keys=[reviewed_by_account_id])

    @property
    def is_pending(self):
        return self.status == "pending"

    def to_dict(self):
        return {
            "id": self.id,
            "businessName": self.business_name,
            "contactPerson": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "whatsapp": self.whatsapp,
            "address": self.address,
            "vatPan": self.vat_pan,
            "businessType": self.business_type,
            "yearsInBusiness": self.years_in_business,
            "message": self.message,
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "reviewedAt": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DealerApplication {self.email} ({self.status})>"
