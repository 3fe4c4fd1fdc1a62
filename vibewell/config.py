import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./vibewell.db")

# Auth0 Configuration
AUTH0_DOMAIN = os.getenv("AUTH0_DOMAIN")
AUTH0_AUDIENCE = os.getenv("AUTH0_AUDIENCE")
# Users whose token carries this claim value in the roles claim are treated as admins
AUTH0_ROLES_CLAIM = os.getenv("AUTH0_ROLES_CLAIM", "https://vibewell.com/roles")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd")

if not STRIPE_WEBHOOK_SECRET:
    import warnings

    warnings.warn(
        "STRIPE_WEBHOOK_SECRET not set! Stripe webhooks will be rejected", RuntimeWarning, stacklevel=2
    )

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Vibewell <noreply@vibewell.com>")

# Twilio SMS Configuration (optional)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

# Booking defaults (used when a provider has not configured their own hours)
DEFAULT_BUSINESS_START_HOUR = int(os.getenv("DEFAULT_BUSINESS_START_HOUR", "9"))
DEFAULT_BUSINESS_END_HOUR = int(os.getenv("DEFAULT_BUSINESS_END_HOUR", "17"))
DEFAULT_SLOT_INTERVAL_MINUTES = int(os.getenv("DEFAULT_SLOT_INTERVAL_MINUTES", "30"))
# Cancellations made at least this many hours ahead get an automatic refund
FREE_CANCELLATION_HOURS = int(os.getenv("FREE_CANCELLATION_HOURS", "24"))
# Pending bookings without payment are expired after this many minutes
PENDING_BOOKING_TTL_MINUTES = int(os.getenv("PENDING_BOOKING_TTL_MINUTES", "60"))

# Dynamic pricing
PEAK_HOURS_START = int(os.getenv("PEAK_HOURS_START", "9"))
PEAK_HOURS_END = int(os.getenv("PEAK_HOURS_END", "17"))
PEAK_HOURS_MULTIPLIER = float(os.getenv("PEAK_HOURS_MULTIPLIER", "1.2"))
LAST_MINUTE_DISCOUNT = float(os.getenv("LAST_MINUTE_DISCOUNT", "0.3"))
LAST_MINUTE_WINDOW_HOURS = int(os.getenv("LAST_MINUTE_WINDOW_HOURS", "24"))

# Audit reports are written here as JSON
AUDIT_REPORTS_DIR = os.getenv("AUDIT_REPORTS_DIR", "reports/audit")
