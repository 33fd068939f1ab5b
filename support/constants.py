import os

from dotenv import load_dotenv

load_dotenv()


def _get_int_env(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to default on empty or bad values."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


APP_NAME = "doc-conversion-gateway"
APP_VERSION = "1.0.0"
APP_ENV = os.getenv("APP_ENV", "development").lower()
IS_PRODUCTION = APP_ENV == "production"

ALLOWED_CONTENT_TYPES_SET = {
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/tiff",
    "image/gif",
    "image/bmp",
}
CONVERTIBLE_EXTENSIONS = ("pdf", "jpg", "jpeg", "png", "gif", "webp", "tiff", "tif", "bmp")
OUTPUT_EXTENSION = ".csv"
OUTPUT_CONTENT_TYPE = "text/csv"

MAX_UPLOAD_BYTES_SIZE = _get_int_env("MAX_UPLOAD_BYTES", 20 * 1024 * 1024)

# External conversion workflow
FORWARD_TIMEOUT_SECONDS = _get_int_env("FORWARD_TIMEOUT_SECONDS", 30)
FORWARD_MAX_BYTES = _get_int_env("FORWARD_MAX_BYTES", 50 * 1024 * 1024)
HEALTH_CHECK_TIMEOUT_SECONDS = 5
USER_AGENT = f"{APP_NAME}/{APP_VERSION}"
CALLBACK_SECRET_HEADER = "x-callback-secret"

# Artifact storage
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local").lower()
STORAGE_TIMEOUT_SECONDS = _get_int_env("STORAGE_TIMEOUT_SECONDS", 15)
DOWNLOAD_URL_EXPIRES_SECONDS = _get_int_env("DOWNLOAD_URL_EXPIRES_SECONDS", 3600)
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")

# Rate limits per route: (max requests, window seconds)
RATE_LIMIT_UPLOAD = (_get_int_env("RL_UPLOAD_MAX", 10), 60 * 60)
RATE_LIMIT_STATUS = (_get_int_env("RL_STATUS_MAX", 30), 10)
RATE_LIMIT_DOWNLOAD = (_get_int_env("RL_DOWNLOAD_MAX", 60), 60)
RATE_LIMIT_LIST = (_get_int_env("RL_LIST_MAX", 120), 60)
RATE_LIMIT_DELETE = (_get_int_env("RL_DELETE_MAX", 20), 60 * 60)
RATE_LIMIT_CALLBACK = (_get_int_env("RL_CALLBACK_MAX", 100), 60)
RATE_LIMIT_CALLBACK_TRUSTED = (_get_int_env("RL_CALLBACK_TRUSTED_MAX", 1000), 60)

# Redis job events
USE_REDIS_PUBLISH = os.getenv("USE_REDIS_PUBLISH", "false").lower() == "true"
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
JOB_EVENTS_CHANNEL = os.getenv("JOB_EVENTS_CHANNEL", "job_events")

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOG_FILE_PATH = os.getenv("LOG_FILE_PATH", os.path.join(BASE_DIR, "logs", "app.log"))
TMP_DIR = os.getenv("TMP_DIR", os.path.join(BASE_DIR, "tmp"))
ARTIFACT_DIR = os.getenv("ARTIFACT_DIR", os.path.join(BASE_DIR, "storage", "artifacts"))
