import os
from datetime import timedelta

from dotenv import load_dotenv

# Load .env from project root so local MONGO_URI / Google credentials are picked up
load_dotenv()


def _env_flag(name, default):
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name, default):
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "change-this-jwt-secret")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get("JWT_EXPIRES_HOURS", "12")))
    # Browser clients authenticate with the cookie set after Google login,
    # API clients with an Authorization header.
    JWT_TOKEN_LOCATION = ["headers", "cookies"]
    JWT_COOKIE_SECURE = _env_flag("JWT_COOKIE_SECURE", "0")
    JWT_COOKIE_SAMESITE = os.environ.get("JWT_COOKIE_SAMESITE", "Lax")
    # Cookie-authenticated writes must echo the csrf_access_token cookie in X-CSRF-TOKEN.
    JWT_COOKIE_CSRF_PROTECT = _env_flag("JWT_COOKIE_CSRF_PROTECT", "1")

    # Browser origins allowed to call the API with credentials.
    CORS_ORIGINS = _env_list("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017/?directConnection=true")
    MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "taskpilot")

    GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET")
    GOOGLE_REDIRECT_URI = os.environ.get(
        "GOOGLE_REDIRECT_URI",
        "http://127.0.0.1:5000/auth/google/callback",
    )
    CALENDAR_TIME_ZONE = os.environ.get("CALENDAR_TIME_ZONE", "UTC")

    REMINDER_SCHEDULER_ENABLED = _env_flag("REMINDER_SCHEDULER_ENABLED", "1")
    DAILY_DIGEST_HOUR = int(os.environ.get("DAILY_DIGEST_HOUR", "9"))
    REMINDER_CHECK_INTERVAL_SECONDS = int(os.environ.get("REMINDER_CHECK_INTERVAL_SECONDS", "60"))

    UPLOAD_MAX_BYTES = int(os.environ.get("UPLOAD_MAX_BYTES", str(10 * 1024 * 1024)))
    MAX_CONTENT_LENGTH = UPLOAD_MAX_BYTES

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    JSON_SORT_KEYS = False


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    MONGO_DB_NAME = "taskpilot_test"
    GOOGLE_CLIENT_ID = "test-client-id"
    GOOGLE_CLIENT_SECRET = "test-client-secret"
    REMINDER_SCHEDULER_ENABLED = False
    JWT_COOKIE_CSRF_PROTECT = True
    CORS_ORIGINS = ["http://localhost:3000"]
