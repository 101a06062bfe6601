import os
from dataclasses import dataclass

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as wellness.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "wellness.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "wellness_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = False  # set True when using HTTPS

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Availability windows, day names and "HH:MM" strings are all read in this zone
    BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "UTC")

    # Slot grid
    SLOT_GRID_START_HOUR = 10
    SLOT_GRID_END_HOUR = 20
    SLOT_MINUTES = 30
    AVAILABILITY_PROBE_MINUTES = 60     # read-time overlap probe, independent of service
    CONFLICT_SCAN_HOURS = 2             # +/- window scanned by the slot validator

    # Booking policy
    MODIFICATION_CUTOFF_HOURS = 24      # reschedule / hard cancel / half refund
    FULL_REFUND_HOURS = 48

    # Payments
    CURRENCY = "INR"
    GATEWAY_KEY_ID = os.getenv("GATEWAY_KEY_ID")
    GATEWAY_KEY_SECRET = os.getenv("GATEWAY_KEY_SECRET", "")
    WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "")
    REFUNDS_ENABLED = _env_flag("REFUNDS_ENABLED")
    PAYMENT_EVENTS_ENABLED = _env_flag("PAYMENT_EVENTS_ENABLED", "true")

    # create_all() at startup; migrations own the schema otherwise
    AUTO_CREATE_TABLES = _env_flag("AUTO_CREATE_TABLES")

    # Basic app settings
    DEBUG = False


@dataclass(frozen=True)
class ReconciliationConfig:
    """Settings handed to the payment reconciliation services."""

    refunds_enabled: bool
    webhook_secret: str
    gateway_key_secret: str
    payment_events_enabled: bool = True

    @classmethod
    def from_mapping(cls, config) -> "ReconciliationConfig":
        return cls(
            refunds_enabled=bool(config.get("REFUNDS_ENABLED", False)),
            webhook_secret=config.get("WEBHOOK_SECRET") or "",
            gateway_key_secret=config.get("GATEWAY_KEY_SECRET") or "",
            payment_events_enabled=bool(config.get("PAYMENT_EVENTS_ENABLED", True)),
        )
