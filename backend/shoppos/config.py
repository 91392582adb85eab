# backend/shoppos/config.py
"""
Application configuration.

The environment is read exactly once, when this module is imported at startup.
Services read settings through current_app.config; nothing below the app
factory touches os.environ.
"""
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shoppos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///shoppos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie (signed token carrying user id and role)
    SESSION_COOKIE_NAME_TOKEN = "token"
    SESSION_MAX_AGE_SECONDS = _env_int("SESSION_MAX_AGE_SECONDS", 7 * 24 * 60 * 60)
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)

    CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "http://localhost:5175")

    # Bootstrap admin used by `flask system init`
    DEFAULT_ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
    DEFAULT_ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin12345")

    # Login throttle
    LOGIN_MAX_FAILED_ATTEMPTS = _env_int("LOGIN_MAX_FAILED_ATTEMPTS", 10)
    LOGIN_WINDOW_SECONDS = _env_int("LOGIN_WINDOW_SECONDS", 60)

    # Telegram notifications; both values must be set to enable delivery
    TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")
    TELEGRAM_API_BASE = os.environ.get("TELEGRAM_API_BASE", "https://api.telegram.org")
    HTTPS_PROXY = os.environ.get("HTTPS_PROXY")
    NOTIFY_ASYNC = _env_bool("NOTIFY_ASYNC", True)
    NOTIFY_TIMEOUT_SECONDS = _env_int("NOTIFY_TIMEOUT_SECONDS", 5)

    # Reporting calendar
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")
    MONTHLY_REPORT_DAY = _env_int("MONTHLY_REPORT_DAY", 1)
    MONTHLY_REPORT_HOUR = _env_int("MONTHLY_REPORT_HOUR", 9)
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", False)
    SCHEDULER_INTERVAL_SECONDS = _env_int("SCHEDULER_INTERVAL_SECONDS", 60)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Default units per purchased pack, keyed by category name (case-insensitive).
    # A product's own pack_size > 1 always wins over this table.
    PACK_SIZE_DEFAULTS = {
        "sausages": 12,
        "flatbread": 2,
    }
