"""
Custom route decorators for access control.

- caller_required: the request carries a valid Clerk session (an Account
  row is not required yet -- applicants apply before they have one).
- admin_required: valid Clerk session AND an active Account with role=admin.

Both answer in JSON: 401 when no identity could be resolved, 403 when the
identity is known but not allowed.
"""

from functools import wraps

from flask import g, jsonify
from flask_login import current_user


def _caller_identity():
    # Touching current_user runs the request_loader, which sets g.caller_identity
    current_user._get_current_object()
    return g.get("caller_identity")


def caller_required(f):
    """Require a resolved Clerk identity."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if _caller_identity() is None:
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Require a resolved Clerk identity + an active admin Account."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if _caller_identity() is None:
            return jsonify({"error": "Unauthorized"}), 401
        if (
            not current_user.is_authenticated
            or not current_user.is_admin
            or not current_user.is_active
        ):
            return jsonify({"error": "Forbidden - Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated
