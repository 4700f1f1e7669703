"""Webhook event model (idempotency table).

Every identity-provider webhook is recorded by its svix message ID. Before
processing any event, the handler checks this table. If the message ID
already exists, it returns 200 immediately — svix retries are no-ops.
"""

import uuid

from app.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    message_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "msg_2Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "user.created"
    processed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<WebhookEvent {self.message_id} ({self.event_type})>"
