import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload (and not get
# stuck on old environment variables).
#
# For automated tests (SQLite), we need to prevent backend/.env from overriding the
# test DATABASE_URL. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _env_flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or default).strip() in {"1", "true", "True", "yes", "YES"}


_BACKEND_DIR = Path(__file__).resolve().parent.parent

_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the backend can start out-of-the-box.
# Use an absolute path so it works regardless of current working directory.
_default_sqlite_path = (_BACKEND_DIR / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()

# Auth / JWT
# NOTE: keep a default for local dev so the server can boot even if SECRET_KEY isn't set.
SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret_change_me")

# Public base URL (checkout redirects, signed storage URLs)
SITE_URL = (os.getenv("SITE_URL", "http://localhost:3000") or "http://localhost:3000").rstrip("/")

# -------------------- AI (Gemini) --------------------
# GOOGLE_GENERATIVE_AI_API_KEY is accepted as an alias for deployments that share the
# key with the web frontend.
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_GENERATIVE_AI_API_KEY")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
GEMINI_API_VERSION = os.getenv("GEMINI_API_VERSION", "v1beta")
GEMINI_SCAN_MODEL = os.getenv("GEMINI_SCAN_MODEL", "gemini-1.5-pro-latest")
GEMINI_EXTRACT_MODEL = os.getenv("GEMINI_EXTRACT_MODEL", "gemini-2.0-flash")
GEMINI_JOB_MODEL = os.getenv("GEMINI_JOB_MODEL", "gemini-2.0-flash")

# Scans can take a while (PDF input + long JSON output); keep the timeout generous.
AI_TIMEOUT_S = float(os.getenv("AI_TIMEOUT_S", "60") or "60")
# Scans are never retried after a response; this only covers transport-level retries.
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "0") or "0")
AI_LOG_PAYLOADS = _env_flag("AI_LOG_PAYLOADS")

SCAN_TEMPERATURE = float(os.getenv("SCAN_TEMPERATURE", "0.3") or "0.3")
EXTRACT_TEMPERATURE = float(os.getenv("EXTRACT_TEMPERATURE", "0.1") or "0.1")

# -------------------- Object storage --------------------
# Absolute path; override with STORAGE_DIR in env (useful for tests).
STORAGE_DIR = os.getenv("STORAGE_DIR") or (_BACKEND_DIR / "storage").as_posix()
SIGNED_URL_TTL_S = int(os.getenv("SIGNED_URL_TTL_S", "3600") or "3600")
MAX_RESUME_BYTES = int(os.getenv("MAX_RESUME_BYTES", str(5 * 1024 * 1024)) or 5 * 1024 * 1024)

# Thumbnails (first PDF page)
# - POPPLER_PATH: path to Poppler bin folder for pdf2image (Windows often needs this)
THUMBNAIL_WIDTH = int(os.getenv("THUMBNAIL_WIDTH", "1000") or "1000")
THUMBNAIL_HEIGHT = int(os.getenv("THUMBNAIL_HEIGHT", "562") or "562")
POPPLER_PATH = os.getenv("POPPLER_PATH")  # e.g. C:\\poppler\\Library\\bin

# -------------------- Payments (Stripe) --------------------
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_PRICE_ID = os.getenv("STRIPE_PRICE_ID")
CREDITS_PER_PURCHASE = int(os.getenv("CREDITS_PER_PURCHASE", "30") or "30")

# -------------------- Job listing extraction --------------------
JOB_LISTING_RATE_LIMIT = int(os.getenv("JOB_LISTING_RATE_LIMIT", "5") or "5")
JOB_LISTING_RATE_WINDOW_S = float(os.getenv("JOB_LISTING_RATE_WINDOW_S", "60") or "60")

# -------------------- Background tasks --------------------
RECOVER_TASKS_ON_STARTUP = _env_flag("RECOVER_TASKS_ON_STARTUP", "1")
