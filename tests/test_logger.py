import logging

import pytest

from fleet_alerts.logger import setup_logging


@pytest.fixture(autouse=True)
def _restore_levels():
    names = ("", "httpx", "httpcore", "telegram")
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def test_explicit_level_wins_over_env(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    assert setup_logging("debug") == logging.DEBUG
    assert logging.getLogger().level == logging.DEBUG


def test_unknown_env_level_falls_back_to_info(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    assert setup_logging() == logging.INFO


def test_http_clients_stay_at_warning_in_debug() -> None:
    setup_logging("DEBUG")

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("telegram").level == logging.WARNING
