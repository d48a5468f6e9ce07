import os
import tempfile

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# weekday (0 = Sunday) -> [open, close]; a missing day means closed
DEFAULT_OPEN_HOURS = {day: ["08:00", "22:00"] for day in range(7)}

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as courtbook.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "courtbook.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Identity comes from the gateway in X-User-Id / X-User-Roles
    TRUST_IDENTITY_HEADERS = os.getenv("TRUST_IDENTITY_HEADERS", "true").lower() == "true"

    # Club: all booking times are wall-clock times in this zone
    CLUB_TIMEZONE = os.getenv("CLUB_TIMEZONE", "Europe/Madrid")
    CURRENCY = os.getenv("CURRENCY", "EUR")

    # Pricing: used where no rate rule applies; unset = such intervals cannot be priced
    DEFAULT_HOURLY_RATE_CENTS = os.getenv("DEFAULT_HOURLY_RATE_CENTS")
    # "warn" flags overlapping rules of the same scope, "reject" refuses them
    RATE_OVERLAP_POLICY = os.getenv("RATE_OVERLAP_POLICY", "warn")

    # Availability grid and opening hours
    SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))
    OPEN_HOURS = os.getenv("OPEN_HOURS_JSON") or DEFAULT_OPEN_HOURS
    MIN_ADVANCE_MINUTES = int(os.getenv("MIN_ADVANCE_MINUTES", "0"))

    # Holds: 10 minutes to pay or confirm
    HOLD_TTL_SECONDS = int(os.getenv("HOLD_TTL_SECONDS", "600"))

    # Split payments: players per booking
    SPLIT_PARTY_SIZE = int(os.getenv("SPLIT_PARTY_SIZE", "4"))

    # Recurring series safety brake
    MAX_RECURRING_OCCURRENCES = int(os.getenv("MAX_RECURRING_OCCURRENCES", "500"))

    # Stripe (card payments for individual shares)
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")

    # Basic app settings
    DEBUG = False
    TESTING = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///" + os.path.join(tempfile.gettempdir(), "courtbook_test.db")
    # threads share the file database; writers queue on BEGIN IMMEDIATE
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    CLUB_TIMEZONE = "UTC"
    DEFAULT_HOURLY_RATE_CENTS = None
    RATE_OVERLAP_POLICY = "warn"
    OPEN_HOURS = DEFAULT_OPEN_HOURS
    MIN_ADVANCE_MINUTES = 0
    HOLD_TTL_SECONDS = 600
    SPLIT_PARTY_SIZE = 4
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_dummy"
    STRIPE_SUCCESS_URL = "https://example.test/paid"
    STRIPE_CANCEL_URL = "https://example.test/cancelled"
    LOG_FILE = None
