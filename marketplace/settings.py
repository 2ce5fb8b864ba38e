# marketplace/settings.py
import logging
import os

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

# --- Configuration ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "")

JWT_SECRET          = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM       = "HS256"
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))
COOKIE_SECURE       = os.getenv("COOKIE_SECURE", "false").lower() == "true"

FRONTEND_URL        = os.getenv("FRONTEND_URL", "http://localhost:5173")
GOOGLE_CLIENT_ID    = os.getenv("GOOGLE_CLIENT_ID", "")

REDIS_URL           = os.getenv("REDIS_URL", "")
AVAILABLE_CACHE_KEY = "availableAdSpaces"
AVAILABLE_CACHE_TTL = int(os.getenv("AVAILABLE_CACHE_TTL", "60"))

GCS_BUCKET_NAME     = os.getenv("GCS_BUCKET_NAME", "")

SMTP_HOST           = os.getenv("SMTP_HOST", "")
SMTP_PORT           = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME       = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD       = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM           = os.getenv("SMTP_FROM", "")
SMTP_USE_TLS        = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

RATE_LIMIT_MAX            = int(os.getenv("RATE_LIMIT_MAX", "1000"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))

HOUSEKEEPING_INTERVAL_SECONDS = int(os.getenv("HOUSEKEEPING_INTERVAL_SECONDS", str(24 * 3600)))

# Domain constants
MAX_IMAGES_PER_AD_SPACE = 5
IMAGE_MAX_WIDTH = 800
IMAGE_JPEG_QUALITY = 80
MAX_MESSAGE_LENGTH = 2000
OTP_TTL_MINUTES = 10
REJECTED_REQUEST_RETENTION_DAYS = 30
MESSAGE_ARCHIVE_AGE_DAYS = 182
