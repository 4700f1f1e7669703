"""Identity service — Clerk Backend API calls and session verification.

Responsible for:
- Verifying the caller's Clerk session token (RS256 JWT, JWKS)
- Resolving the caller's identity (id + primary email)
- Looking up users by email
- Creating users (invite flow) and deleting them (invite rollback)

All HTTP calls go through requests with explicit timeouts. Transport or
API failures raise IdentityProviderError; "no such user" returns None.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

import jwt
import requests
from flask import current_app

from app.services.errors import IdentityProviderError, Invalid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalIdentity:
    """A user record held by the identity provider."""

    id: str
    email: str | None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None

    @property
    def full_name(self):
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email


def identity_from_payload(data):
    """Build an ExternalIdentity from a Clerk user object (API or webhook)."""
    emails = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    email = None
    for entry in emails:
        if entry.get("id") == primary_id:
            email = entry.get("email_address")
            break
    if email is None and emails:
        email = emails[0].get("email_address")

    phones = data.get("phone_numbers") or []
    phone = phones[0].get("phone_number") if phones else None

    return ExternalIdentity(
        id=data["id"],
        email=email.lower().strip() if email else None,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        phone=phone,
    )


# ──────────────────────────────────────────────
# HTTP plumbing
# ──────────────────────────────────────────────

def _api_url(path):
    base = current_app.config.get("CLERK_API_URL", "https://api.clerk.com/v1")
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def _headers():
    return {
        "Authorization": f"Bearer {current_app.config['CLERK_SECRET_KEY']}",
        "Content-Type": "application/json",
    }


def _request(method, path, **kwargs):
    try:
        resp = requests.request(
            method, _api_url(path), headers=_headers(), timeout=15, **kwargs
        )
    except requests.RequestException as e:
        logger.error(f"Clerk {method} {path} failed: {e}")
        raise IdentityProviderError("Identity provider is unreachable.") from e
    return resp


def _error_code(resp):
    try:
        errors = resp.json().get("errors") or []
    except ValueError:
        return None
    return errors[0].get("code") if errors else None


# ──────────────────────────────────────────────
# Session verification
# ──────────────────────────────────────────────

@lru_cache(maxsize=4)
def _jwks_client(jwks_url):
    return jwt.PyJWKClient(jwks_url)


def verify_session_token(token):
    """Verify a Clerk session JWT. Returns its claims, or None if invalid."""
    jwks_url = current_app.config.get("CLERK_JWKS_URL")
    if not jwks_url:
        logger.warning("Session token not verified — CLERK_JWKS_URL not configured.")
        return None

    try:
        signing_key = _jwks_client(jwks_url).get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            options={"require": ["exp", "sub"]},
        )
    except jwt.PyJWTError as e:
        logger.info(f"Rejected session token: {e}")
        return None

    parties = current_app.config.get("CLERK_AUTHORIZED_PARTIES") or []
    if parties and claims.get("azp") not in parties:
        logger.info(f"Rejected session token from unauthorized party {claims.get('azp')}")
        return None

    return claims


def resolve_caller(token):
    """Return the ExternalIdentity behind a session token, or None."""
    claims = verify_session_token(token)
    if claims is None:
        return None
    try:
        return get_user(claims["sub"])
    except IdentityProviderError:
        return None


# ──────────────────────────────────────────────
# Users
# ──────────────────────────────────────────────

def get_user(user_id):
    """Fetch a single Clerk user by id. Returns None if it doesn't exist."""
    resp = _request("GET", f"users/{user_id}")
    if resp.status_code == 404:
        return None
    if not resp.ok:
        raise IdentityProviderError(
            f"Failed to fetch user from identity provider ({resp.status_code})."
        )
    return identity_from_payload(resp.json())


def find_user_by_email(email):
    """Return the first Clerk user with this email address, or None."""
    resp = _request(
        "GET", "users", params={"email_address": email.lower().strip(), "limit": 1}
    )
    if not resp.ok:
        raise IdentityProviderError(
            f"Failed to look up user in identity provider ({resp.status_code})."
        )
    users = resp.json()
    # Older API versions wrap the list as {"data": [...]}
    if isinstance(users, dict):
        users = users.get("data") or []
    if not users:
        return None
    return identity_from_payload(users[0])


def create_user(email, first_name=None, last_name=None):
    """Create a passwordless Clerk user (invited dealers sign in with an
    email code first).

    Raises:
        Invalid: a user with this email already exists.
        IdentityProviderError: any other API failure.
    """
    payload = {"email_address": [email.lower().strip()]}
    if first_name:
        payload["first_name"] = first_name
    if last_name:
        payload["last_name"] = last_name
    payload["skip_password_requirement"] = True

    resp = _request("POST", "users", json=payload)
    if not resp.ok:
        code = _error_code(resp)
        if code == "form_identifier_exists":
            raise Invalid("A user with this email already exists")
        logger.error(f"Clerk user creation failed for {email}: {resp.status_code} {resp.text}")
        raise IdentityProviderError(
            "Failed to create user in identity provider.",
            details=code,
        )

    identity = identity_from_payload(resp.json())
    logger.info(f"Created Clerk user {identity.id} for {identity.email}")
    return identity


def delete_user(user_id):
    """Delete a Clerk user. Already-deleted users are not an error."""
    resp = _request("DELETE", f"users/{user_id}")
    if resp.status_code == 404:
        return
    if not resp.ok:
        raise IdentityProviderError(
            f"Failed to delete user from identity provider ({resp.status_code})."
        )
    logger.info(f"Deleted Clerk user {user_id}")
