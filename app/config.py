import os


def _flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: Supabase and most PaaS providers hand out
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")
    COMPANY_NAME = os.environ.get("COMPANY_NAME", "Jeen Mata Impex")

    # --- Clerk (identity provider) ---
    CLERK_SECRET_KEY = os.environ.get("CLERK_SECRET_KEY")
    CLERK_API_URL = os.environ.get("CLERK_API_URL", "https://api.clerk.com/v1")
    CLERK_JWKS_URL = os.environ.get("CLERK_JWKS_URL")        # e.g. https://<app>.clerk.accounts.dev/.well-known/jwks.json
    CLERK_AUTHORIZED_PARTIES = [
        p.strip()
        for p in os.environ.get("CLERK_AUTHORIZED_PARTIES", "").split(",")
        if p.strip()
    ]
    CLERK_WEBHOOK_SECRET = os.environ.get("CLERK_WEBHOOK_SECRET")  # whsec_...

    # --- Email (SMTP) ---
    # When MAIL_USERNAME / MAIL_PASSWORD are unset, emails are only logged.
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Jeen Mata Impex")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS")  # defaults to MAIL_USERNAME
    OWNER_EMAIL = os.environ.get("OWNER_EMAIL")              # receives new-application alerts

    # --- WhatsApp ---
    # Provider: twilio | whatsapp-business | custom-webhook
    WHATSAPP_ENABLED = _flag("WHATSAPP_ENABLED")
    WHATSAPP_PROVIDER = os.environ.get("WHATSAPP_PROVIDER", "twilio")
    OWNER_WHATSAPP_NUMBER = os.environ.get("OWNER_WHATSAPP_NUMBER")
    TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN")
    TWILIO_WHATSAPP_NUMBER = os.environ.get("TWILIO_WHATSAPP_NUMBER")  # e.g. whatsapp:+14155238886
    WHATSAPP_BUSINESS_ACCESS_TOKEN = os.environ.get("WHATSAPP_BUSINESS_ACCESS_TOKEN")
    WHATSAPP_BUSINESS_PHONE_NUMBER_ID = os.environ.get("WHATSAPP_BUSINESS_PHONE_NUMBER_ID")
    WHATSAPP_WEBHOOK_URL = os.environ.get("WHATSAPP_WEBHOOK_URL")
    WHATSAPP_WEBHOOK_API_KEY = os.environ.get("WHATSAPP_WEBHOOK_API_KEY")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "CLERK_SECRET_KEY",
            "CLERK_JWKS_URL",
            "CLERK_WEBHOOK_SECRET",
            "APP_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, external services faked."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    APP_BASE_URL = "http://localhost:5000"
    CLERK_SECRET_KEY = "sk_test_fake"
    CLERK_JWKS_URL = "https://clerk.test/.well-known/jwks.json"
    CLERK_AUTHORIZED_PARTIES = []
    CLERK_WEBHOOK_SECRET = "whsec_dGVzdHNlY3JldHRlc3RzZWNyZXQ="
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    OWNER_EMAIL = "owner@jeenmata.test"
    WHATSAPP_ENABLED = False  # override per-test as needed
    OWNER_WHATSAPP_NUMBER = "+977-9876543210"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
