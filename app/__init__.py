import os
import logging

import click
from flask import Flask, jsonify

from app.config import config_by_name
from app.extensions import db, migrate, login_manager, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from app import models  # noqa: F401

    # --- Notification dispatcher (settings resolved once) ---
    from app.services.notification_service import init_notifications
    init_notifications(app)

    # --- Register blueprints ---
    from app.blueprints.admin import admin_bp
    from app.blueprints.dealers import dealers_bp
    from app.blueprints.webhooks import webhooks_bp

    app.register_blueprint(admin_bp)
    app.register_blueprint(dealers_bp)
    app.register_blueprint(webhooks_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        return jsonify({"service": app.config["COMPANY_NAME"], "status": "ok"})

    # --- Error handlers ---
    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON API: nothing to load, nothing to frame
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_error_handlers(app):
    """Every error leaves as JSON {error}."""

    def _json_error(message, status):
        def handler(e):
            return jsonify({"error": message}), status
        return handler

    app.register_error_handler(400, _json_error("Bad request", 400))
    app.register_error_handler(401, _json_error("Unauthorized", 401))
    app.register_error_handler(403, _json_error("Forbidden", 403))
    app.register_error_handler(404, _json_error("Not found", 404))
    app.register_error_handler(405, _json_error("Method not allowed", 405))
    app.register_error_handler(429, _json_error("Too many requests", 429))

    @app.errorhandler(500)
    def server_error(e):
        app.logger.error(f"Unhandled error: {getattr(e, 'original_exception', e)}")
        return jsonify({"error": "Internal server error"}), 500


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", required=True, help="Admin email (must match the Clerk sign-in)")
    @click.option("--name", default="Admin", help="Admin display name")
    def seed_admin(email, name):
        """Create an admin Account, or promote an existing one.

        Usage:
            flask seed-admin --email owner@example.com
            flask seed-admin --email owner@example.com --name "Ram Thapa"
        """
        from app.models.account import Account
        from app.models.audit import AuditEvent

        email = email.lower().strip()
        admin = Account.query.filter_by(email=email).first()
        if admin:
            admin.role = "admin"
            admin.is_active = True
            click.echo(f"Promoted existing account to admin: {email}")
        else:
            admin = Account(email=email, full_name=name, role="admin")
            db.session.add(admin)
            db.session.flush()
            click.echo(f"Created admin account: {email}")

        db.session.add(AuditEvent(
            actor_account_id=admin.id,
            action="account.admin_seeded",
            metadata_={"email": email},
        ))
        db.session.commit()

        click.echo(f"  Account id: {admin.id}")
        click.echo("  Sign in with Clerk using this email to access /api/admin.")
