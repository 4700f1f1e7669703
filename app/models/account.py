"""Account model.

The local record for a portal user (admin, dealer, or a signed-up user
awaiting dealer approval). Credentials live with the identity provider;
this row holds role, dealer status, and business profile.
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from app.extensions import db


class Account(UserMixin, db.Model):
    __tablename__ = "users"

    ROLES = ["user", "dealer", "admin"]
    DEALER_STATUSES = ["pending", "approved"]

    # Store always generates the primary key; the identity provider's id
    # lives in clerk_user_id.
    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    clerk_user_id = db.Column(db.String(64), unique=True, nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255))
    business_name = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    whatsapp = db.Column(db.String(50))
    address = db.Column(db.Text)
    vat_pan = db.Column(db.String(100))
    business_type = db.Column(db.String(100))
    role = db.Column(
        db.String(20), default="user", nullable=False
    )  # user | dealer | admin
    dealer_status = db.Column(
        db.String(20), nullable=True
    )  # pending | approved, null for non-dealers
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    audit_events = db.relationship(
        "AuditEvent", back_populates="actor", lazy="dynamic"
    )

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_approved_dealer(self):
        return self.role == "dealer" and self.dealer_status == "approved"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.full_name,
            "businessName": self.business_name,
            "phone": self.phone,
            "whatsapp": self.whatsapp,
            "address": self.address,
            "vatPan": self.vat_pan,
            "role": self.role,
            "dealerStatus": self.dealer_status,
        }

    def __repr__(self):
        return f"<Account {self.email} ({self.role})>"
