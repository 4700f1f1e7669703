# Models package: import all models here so Alembic can discover them.

from app.models.account import Account  # noqa: F401
from app.models.dealer_application import DealerApplication  # noqa: F401
from app.models.audit import AuditEvent  # noqa: F401
from app.models.webhook_event import WebhookEvent  # noqa: F401
