"""Shared test fixtures and dummy classes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from fleet_alerts.manager import AlertManager
from fleet_alerts.models.alerts import AlertRule
from fleet_alerts.models.settings import UserNotificationSettings
from fleet_alerts.models.snapshot import MetricSnapshot
from fleet_alerts.models.system import STATUS_UP, System
from fleet_alerts.notify import NotificationDispatcher
from fleet_alerts.store import MemoryStore

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
APP_URL = "http://fleet.local"
USER = "u1"
SYSTEM_ID = "sys1"
SYSTEM_NAME = "web-1"


class DummyChat:
    """Dummy Telegram chat for testing."""

    def __init__(self, chat_id: int) -> None:
        self.id = chat_id
        self.sent: list[str] = []

    async def send_message(self, text: str) -> None:
        self.sent.append(text)


class DummyUser:
    """Dummy Telegram user for testing."""

    def __init__(self, user_id: int, username: str | None = None) -> None:
        self.id = user_id
        self.username = username


class DummyMessage:
    """Dummy Telegram message for testing."""

    def __init__(self) -> None:
        self.replies: list[str] = []

    async def reply_text(self, text: str, **_: Any) -> None:
        self.replies.append(text)


class DummyUpdate:
    """Dummy Telegram update for testing."""

    def __init__(self, chat_id: int, user_id: int) -> None:
        self.effective_chat = DummyChat(chat_id)
        self.effective_user = DummyUser(user_id)
        self.message = DummyMessage()
        self.effective_message = self.message


class DummyApplication:
    """Dummy Telegram application for testing."""

    def __init__(self) -> None:
        self.bot_data: dict[str, object] = {}


class DummyContext:
    """Dummy Telegram context for testing."""

    def __init__(self, args: list[str] | None = None) -> None:
        self.args = args or []
        self.application = DummyApplication()


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingTransport:
    """Stands in for channels.send_to_url; fails for URLs listed in ``fail``."""

    def __init__(self, fail: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail or set()

    async def __call__(self, url: str, message: str, client: object) -> None:
        scheme = url.split("://", 1)[0]
        if scheme in self.fail:
            raise RuntimeError(f"{scheme} is down")
        self.sent.append((url, message))


def snapshot_at(created: datetime, **fields: Any) -> MetricSnapshot:
    system = fields.pop("system", SYSTEM_ID)
    return MetricSnapshot(system=system, created=created, **fields)


def drain(dispatcher: NotificationDispatcher) -> list:
    """Pop every queued AlertMessage without delivering it."""
    out = []
    while not dispatcher.queue.empty():
        out.append(dispatcher.queue.get_nowait())
        dispatcher.queue.task_done()
    return out


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def system() -> System:
    return System(id=SYSTEM_ID, name=SYSTEM_NAME, status=STATUS_UP, users={USER})


@pytest.fixture
def store(system: System) -> MemoryStore:
    store = MemoryStore()
    store.save_system(system)
    store.save_system(System(id="sys2", name="db-1", status=STATUS_UP, users={USER}))
    store.save_system(System(id="other", name="theirs", users={"u2"}))
    store.set_user_settings(
        USER, UserNotificationSettings(webhooks=["generic://hooks.example.com/alerts"])
    )
    return store


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def dispatcher(store, transport, clock) -> NotificationDispatcher:
    return NotificationDispatcher(store, transport=transport, clock=clock)


@pytest.fixture
def manager(store, dispatcher, clock) -> AlertManager:
    return AlertManager(
        store,
        dispatcher=dispatcher,
        app_url=APP_URL,
        status_scan_interval_s=3600,
        repeat_interval_s=3600,
        reconcile_interval_s=3600,
        clock=clock,
    )


def add_rule(store: MemoryStore, **fields: Any) -> AlertRule:
    fields.setdefault("user", USER)
    fields.setdefault("system", SYSTEM_ID)
    rule = AlertRule(**fields)
    store.save_rule(rule)
    return rule
