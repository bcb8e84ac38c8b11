"""Process-wide logging setup for the alert service."""

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Delivery and polling clients log every HTTP request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "telegram")


def setup_logging(level: str | None = None) -> int:
    """Configure the root logger; returns the level applied.

    ``level`` overrides LOG_LEVEL. Unknown level names fall back to INFO.
    """
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root.addHandler(handler)
    root.setLevel(resolved)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(logging.WARNING, resolved))
    return resolved
