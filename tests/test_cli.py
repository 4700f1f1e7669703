"""Tests for the flask seed-admin command."""

from app.models.account import Account
from app.models.audit import AuditEvent


class TestSeedAdmin:
    def test_creates_admin(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(
            args=["seed-admin", "--email", "Owner@JeenMata.com", "--name", "Owner"]
        )

        assert result.exit_code == 0
        assert "Created admin account: owner@jeenmata.com" in result.output
        admin = Account.query.filter_by(email="owner@jeenmata.com").first()
        assert admin.role == "admin"
        assert admin.full_name == "Owner"
        assert AuditEvent.query.filter_by(action="account.admin_seeded").count() == 1

    def test_promotes_existing_account(self, app, seed_data):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["seed-admin", "--email", "sita@example.com"])

        assert result.exit_code == 0
        assert "Promoted existing account" in result.output
        assert Account.query.filter_by(email="sita@example.com").one().role == "admin"
        assert Account.query.count() == 2

    def test_email_required(self, app):
        result = app.test_cli_runner().invoke(args=["seed-admin"])
        assert result.exit_code != 0
