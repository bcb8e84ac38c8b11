"""Central configuration for fleet_alerts."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Set

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes"}


def _split_ints(s: str) -> Set[int]:
    """Parse comma-separated string into a set of integers.

    Args:
        s: Comma-separated string of integers (e.g., "123,456,789")

    Returns:
        Set of parsed integers. Invalid entries are silently skipped.

    Example:
        >>> _split_ints("123,456,invalid,789")
        {123, 456, 789}
    """
    out = set()
    for part in (s or "").split(","):
        p = part.strip()
        if p.isdigit():
            out.add(int(p))
    return out


def _read_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, "") or default)
    except Exception:
        return default


def _read_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    try:
        return int(raw) if raw else default
    except Exception:
        return default


def _read_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass
class Settings:
    """Configuration settings for fleet_alerts.

    All settings are loaded from environment variables with sensible defaults.
    """

    BOT_TOKEN: str | None
    ALLOWED_CHAT_IDS: Set[int]
    RATE_LIMIT_S: float
    BOT_AUTH_TOTP_SECRET: str | None
    APP_URL: str
    SMTP_HOST: str | None
    SMTP_PORT: int
    SMTP_USER: str | None
    SMTP_PASS: str | None
    SMTP_STARTTLS: bool
    SMTP_SENDER_ADDRESS: str
    SMTP_SENDER_NAME: str
    NOTIFY_WORKERS: int
    NOTIFY_QUEUE_SIZE: int
    NOTIFY_TIMEOUT_S: float
    STATUS_SCAN_INTERVAL_S: float
    REPEAT_CHECK_INTERVAL_S: float
    STATUS_RECONCILE_INTERVAL_S: float
    STATE_FILE: str | None


def _read_settings() -> Settings:
    """Read all configuration from environment variables.

    Returns:
        Settings object with all configuration values.

    Note:
        Invalid numeric values fall back to sensible defaults.
        Boolean values accept: 1/true/yes (case-insensitive) as True.
    """
    token = os.environ.get("BOT_TOKEN") or None
    allowed = _split_ints(os.environ.get("ALLOWED_CHAT_IDS", ""))
    rate_limit = _read_float("RATE_LIMIT_S", 1.0)
    totp_secret = os.environ.get("BOT_AUTH_TOTP_SECRET") or None
    app_url = (os.environ.get("APP_URL") or "http://localhost:8090").rstrip("/")

    # Mail
    smtp_host = os.environ.get("SMTP_HOST") or None
    smtp_port = _read_int("SMTP_PORT", 587)
    smtp_user = os.environ.get("SMTP_USER") or None
    smtp_pass = os.environ.get("SMTP_PASS") or None
    smtp_starttls = _read_bool("SMTP_STARTTLS", True)
    sender_address = os.environ.get("SMTP_SENDER_ADDRESS") or "alerts@localhost"
    sender_name = os.environ.get("SMTP_SENDER_NAME") or "Fleet Alerts"

    # Engine
    notify_workers = max(1, _read_int("NOTIFY_WORKERS", 4))
    notify_queue_size = max(1, _read_int("NOTIFY_QUEUE_SIZE", 100))
    notify_timeout = _read_float("NOTIFY_TIMEOUT_S", 10.0)
    status_scan = _read_float("STATUS_SCAN_INTERVAL_S", 15.0)
    repeat_check = _read_float("REPEAT_CHECK_INTERVAL_S", 60.0)
    status_reconcile = _read_float("STATUS_RECONCILE_INTERVAL_S", 561.0)
    state_file = os.environ.get("STATE_FILE") or None

    return Settings(
        BOT_TOKEN=token,
        ALLOWED_CHAT_IDS=allowed,
        RATE_LIMIT_S=rate_limit,
        BOT_AUTH_TOTP_SECRET=totp_secret,
        APP_URL=app_url,
        SMTP_HOST=smtp_host,
        SMTP_PORT=smtp_port,
        SMTP_USER=smtp_user,
        SMTP_PASS=smtp_pass,
        SMTP_STARTTLS=smtp_starttls,
        SMTP_SENDER_ADDRESS=sender_address,
        SMTP_SENDER_NAME=sender_name,
        NOTIFY_WORKERS=notify_workers,
        NOTIFY_QUEUE_SIZE=notify_queue_size,
        NOTIFY_TIMEOUT_S=notify_timeout,
        STATUS_SCAN_INTERVAL_S=status_scan,
        REPEAT_CHECK_INTERVAL_S=repeat_check,
        STATUS_RECONCILE_INTERVAL_S=status_reconcile,
        STATE_FILE=state_file,
    )


settings = _read_settings()


def validate_settings() -> None:
    """Validate critical configuration and log warnings for issues."""
    if settings.BOT_TOKEN is None:
        logger.warning("BOT_TOKEN is not set; the operator bot cannot start.")
    if not settings.ALLOWED_CHAT_IDS:
        logger.warning(
            "ALLOWED_CHAT_IDS is empty; guarded commands will be unauthorized."
        )
    if settings.BOT_AUTH_TOTP_SECRET is None:
        logger.warning("BOT_AUTH_TOTP_SECRET is not set; /auth will be unavailable.")
    if settings.SMTP_HOST is None:
        logger.info("SMTP_HOST is not set; email notifications are disabled.")


# Exported constants
TOKEN: str | None = settings.BOT_TOKEN
ALLOWED: set[int] = settings.ALLOWED_CHAT_IDS
RATE_LIMIT_S: float = settings.RATE_LIMIT_S
BOT_AUTH_TOTP_SECRET: str | None = settings.BOT_AUTH_TOTP_SECRET
APP_URL: str = settings.APP_URL
STATE_FILE: str | None = settings.STATE_FILE

validate_settings()
