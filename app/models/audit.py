"""Audit event model.

Logs significant actions (application submitted, approved, rejected,
dealer invited, identity sync) for the admin activity feed and debugging.
"""

import uuid

from app.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_account_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    action = db.Column(db.String(255), nullable=False)  # e.g. "dealer_application.approved"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid clashing with SQLAlchemy's metadata
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    actor = db.relationship("Account", back_populates="audit_events")

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
