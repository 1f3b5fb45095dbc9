import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sessionbook.db")

# Admin / provider identity
# A single provider runs this deployment. The admin uid is read once here and
# passed explicitly to every component that needs it (see get_admin_uid).
ADMIN_UID = os.getenv("ADMIN_UID", "")
ADMIN_DISPLAY_NAME = os.getenv("ADMIN_DISPLAY_NAME", "SessionBook Support")
# Provider whose calendar public bookings are written against (defaults to the admin)
SERVICE_PROVIDER_UID = os.getenv("SERVICE_PROVIDER_UID") or ADMIN_UID

# Booking rules
# Time zone used to decide what "today" is when rejecting same-day bookings
BOOKING_TIMEZONE = os.getenv("BOOKING_TIMEZONE", "UTC")
MAX_COACHING_SLOTS = int(os.getenv("MAX_COACHING_SLOTS", "4"))
MAX_AVAILABILITY_RANGE_DAYS = int(os.getenv("MAX_AVAILABILITY_RANGE_DAYS", "31"))
DEFAULT_SESSION_MINUTES = int(os.getenv("DEFAULT_SESSION_MINUTES", "60"))

# Video calls
# JSON list of RTCIceServer dicts, e.g. [{"urls": "stun:stun.l.google.com:19302"}]
ICE_SERVERS = json.loads(
    os.getenv(
        "ICE_SERVERS",
        '[{"urls": "stun:stun.l.google.com:19302"}, {"urls": "stun:stun1.l.google.com:19302"}]',
    )
)
# Seconds a peer waits after seeing "ended" before tearing down locally
CALL_END_GRACE_SECONDS = float(os.getenv("CALL_END_GRACE_SECONDS", "2.0"))
# Rooms that are ended or idle longer than this are reaped by the worker
ROOM_MAX_AGE_HOURS = int(os.getenv("ROOM_MAX_AGE_HOURS", "24"))

# Firebase Configuration (ID token verification only)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH")

# Cloudflare R2 Configuration (payment proofs)
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "sessionbook")

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "SessionBook <onboarding@resend.dev>")

# Google Calendar Configuration (automatic Meet links for online sessions)
# The refresh token belongs to the provider's calendar; the OAuth consent flow
# that produces it is handled outside this service.
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")

# CORS: comma separated list of origins allowed to call the API
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:5173").split(",")
    if origin.strip()
]
