"""Service-layer exceptions.

Each carries the HTTP status the blueprints respond with, so routes can
translate any of them with a single except clause:

    except DealerPortalError as e:
        return jsonify(e.to_dict()), e.status_code
"""


class DealerPortalError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class Unauthenticated(DealerPortalError):
    status_code = 401


class Unauthorized(DealerPortalError):
    status_code = 403


class NotFound(DealerPortalError):
    status_code = 404


class Conflict(DealerPortalError):
    # Admin UI expects 400 for "already processed".
    status_code = 400


class Invalid(DealerPortalError):
    status_code = 400


class StoreFailure(DealerPortalError):
    status_code = 500


class IdentityProviderError(DealerPortalError):
    """Clerk API unreachable or returned an unexpected error."""

    status_code = 500
