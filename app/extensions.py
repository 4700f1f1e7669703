"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import g
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, applied per-route
    storage_uri="memory://",
)

# Flask-Login config: callers are resolved per request from the Clerk
# session token, never from the Flask session cookie.
login_manager.session_protection = None


def _extract_session_token(request):
    """Clerk sends the session JWT as a bearer token or the __session cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get("__session")


@login_manager.request_loader
def load_account_from_request(request):
    """Resolve the caller's Clerk identity, then their Account row.

    The identity is stashed on g.caller_identity even when no Account row
    exists yet, so routes can tell "not signed in" (401) from "signed in
    but not allowed" (403). Imports lazily to avoid circular deps.
    """
    from app.models.account import Account
    from app.services import identity_service

    g.caller_identity = None
    token = _extract_session_token(request)
    if not token:
        return None

    identity = identity_service.resolve_caller(token)
    if identity is None or not identity.email:
        return None
    g.caller_identity = identity

    return Account.query.filter_by(email=identity.email).first()
