import os
from unittest import mock

from fleet_alerts import config


def test_settings_defaults():
    with mock.patch.dict(os.environ, {}, clear=True):
        settings = config._read_settings()
        assert settings.BOT_TOKEN is None
        assert settings.RATE_LIMIT_S == 1.0
        assert settings.APP_URL == "http://localhost:8090"
        assert settings.SMTP_HOST is None
        assert settings.SMTP_PORT == 587
        assert settings.SMTP_STARTTLS is True
        assert settings.NOTIFY_WORKERS == 4
        assert settings.NOTIFY_QUEUE_SIZE == 100
        assert settings.STATUS_SCAN_INTERVAL_S == 15.0
        assert settings.STATUS_RECONCILE_INTERVAL_S == 561.0
        assert settings.STATE_FILE is None


def test_settings_custom():
    env = {
        "BOT_TOKEN": "123:ABC",
        "ALLOWED_CHAT_IDS": "123, 456",
        "RATE_LIMIT_S": "2.5",
        "APP_URL": "https://fleet.example.com/",
        "SMTP_HOST": "smtp.example.com",
        "SMTP_STARTTLS": "no",
        "NOTIFY_WORKERS": "8",
        "STATE_FILE": "/data/alerts.json",
    }
    with mock.patch.dict(os.environ, env, clear=True):
        settings = config._read_settings()
        assert settings.BOT_TOKEN == "123:ABC"
        assert settings.ALLOWED_CHAT_IDS == {123, 456}
        assert settings.RATE_LIMIT_S == 2.5
        assert settings.APP_URL == "https://fleet.example.com"
        assert settings.SMTP_HOST == "smtp.example.com"
        assert settings.SMTP_STARTTLS is False
        assert settings.NOTIFY_WORKERS == 8
        assert settings.STATE_FILE == "/data/alerts.json"


def test_invalid_numbers_fall_back_to_defaults():
    env = {"SMTP_PORT": "smtp", "NOTIFY_TIMEOUT_S": "soon", "NOTIFY_WORKERS": "0"}
    with mock.patch.dict(os.environ, env, clear=True):
        settings = config._read_settings()
        assert settings.SMTP_PORT == 587
        assert settings.NOTIFY_TIMEOUT_S == 10.0
        assert settings.NOTIFY_WORKERS == 1


def test_split_ints_skips_garbage():
    assert config._split_ints("1, x, 22,,") == {1, 22}
