import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as tngolf.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "tngolf.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "tngolf_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 30 minutes
    IDLE_TIMEOUT_SECONDS = 30 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Sign-up
    PASSWORD_MIN_LENGTH = 6

    # The single coach account (compared against the logged in user's email)
    COACH_EMAIL = os.getenv("COACH_EMAIL", "test@example.com")

    # Booking rules
    BOOKING_TIMEZONE = os.getenv("BOOKING_TIMEZONE", "Europe/Stockholm")
    BOOKING_HORIZON_MONTHS = 3
    BOOKING_EXCLUDED_WEEKDAY = 6        # date.weekday(): Sunday
    PENDING_PAYMENT_TTL_MINUTES = 30    # abandoned checkout window
    CHECKOUT_HOLD_MINUTES = 60          # kept this long after a checkout session opens
    CANCELLATION_NOTICE_HOURS = 48
    ONLINE_PAYMENT_METHODS = ("online", "stripe")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "sek")

    # Public site URL (Stripe success/cancel redirects)
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "TN Golf <noreply@tngolf.se>")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Notifications are best-effort; a failed send is retried this many times in total
    NOTIFY_MAX_ATTEMPTS = int(os.getenv("NOTIFY_MAX_ATTEMPTS", "2"))

    # Basic app settings
    DEBUG = False
