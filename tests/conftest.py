"""Shared test fixtures for the dealer portal test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- identity_provider: in-memory stand-in for the Clerk Backend API,
  patched over app.services.identity_service for every test
- seed_data: admin account, a signed-up applicant with a pending
  application, and a plain user account
"""

from unittest.mock import patch

import pytest
from flask import g, request_started

from app import create_app
from app.extensions import db as _db
from app.models.account import Account
from app.models.dealer_application import DealerApplication
from app.services.errors import IdentityProviderError, Invalid
from app.services.identity_service import ExternalIdentity


class FakeIdentityProvider:
    """Clerk users and session tokens held in memory."""

    def __init__(self):
        self.users = {}  # clerk user id -> ExternalIdentity
        self.tokens = {}  # session token -> clerk user id
        self.deleted = []
        self.fail_lookups = False

    def add_user(self, email, first_name=None, last_name=None, token=None):
        identity = ExternalIdentity(
            id=f"user_{len(self.users) + 1:04d}",
            email=email.lower(),
            first_name=first_name,
            last_name=last_name,
        )
        self.users[identity.id] = identity
        if token:
            self.tokens[token] = identity.id
        return identity

    # --- identity_service API ---

    def resolve_caller(self, token):
        return self.users.get(self.tokens.get(token))

    def find_user_by_email(self, email):
        if self.fail_lookups:
            raise IdentityProviderError("Identity provider is unreachable.")
        email = email.lower().strip()
        for identity in self.users.values():
            if identity.email == email:
                return identity
        return None

    def create_user(self, email, first_name=None, last_name=None):
        if self.find_user_by_email(email) is not None:
            raise Invalid("A user with this email already exists")
        return self.add_user(email, first_name=first_name, last_name=last_name)

    def delete_user(self, user_id):
        self.deleted.append(user_id)
        self.users.pop(user_id, None)


def _forget_previous_caller(sender, **extra):
    """Requests share the test's app context, and so its g. Drop the
    caller cached by the previous request so each one authenticates afresh."""
    g.pop("_login_user", None)
    g.pop("caller_identity", None)


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    request_started.connect(_forget_previous_caller, app)
    yield app
    request_started.disconnect(_forget_previous_caller, app)


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture(autouse=True)
def identity_provider():
    """Replace every outbound Clerk call with the in-memory fake."""
    fake = FakeIdentityProvider()
    with patch.multiple(
        "app.services.identity_service",
        resolve_caller=fake.resolve_caller,
        find_user_by_email=fake.find_user_by_email,
        create_user=fake.create_user,
        delete_user=fake.delete_user,
    ):
        yield fake


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seed_data(app, db_session, identity_provider):
    """Seed an admin, a signed-up applicant with a pending application,
    and a plain (non-admin) user.

    Returns a dict with ids and ready-to-use auth headers.
    """
    # --- Admin ---
    identity_provider.add_user(
        "admin@jeenmata.test", "Admin", "User", token="admin-token"
    )
    admin = Account(email="admin@jeenmata.test", full_name="Admin User", role="admin")
    _db.session.add(admin)

    # --- Applicant (signed up with Clerk, no Account row yet) ---
    applicant = identity_provider.add_user(
        "ram@himalayatraders.com", "Ram", "Thapa", token="applicant-token"
    )
    application = DealerApplication(
        business_name="Himalaya Traders",
        contact_person="Ram Thapa",
        email="ram@himalayatraders.com",
        phone="+977-9801234567",
        whatsapp="+977-9801234567",
        address="New Road, Kathmandu",
        vat_pan="601234567",
        business_type="Retailer",
        years_in_business="5",
        message="We sell kitchen goods across the valley.",
        status="pending",
    )
    _db.session.add(application)

    # --- Plain user ---
    identity_provider.add_user(
        "sita@example.com", "Sita", "Rai", token="user-token"
    )
    user = Account(email="sita@example.com", full_name="Sita Rai", role="user")
    _db.session.add(user)

    _db.session.commit()

    return {
        "admin": admin,
        "admin_id": admin.id,
        "admin_headers": bearer("admin-token"),
        "applicant": applicant,
        "applicant_headers": bearer("applicant-token"),
        "application": application,
        "application_id": application.id,
        "user": user,
        "user_id": user.id,
        "user_headers": bearer("user-token"),
    }
