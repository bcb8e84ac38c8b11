"""Repeat notifications for alerts that stay triggered."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from .messages import repeat_message
from .metrics import get_metric_def
from .models.alerts import AlertRule
from .notify import NotificationDispatcher
from .store import RuleStore, SystemStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_due(rule: AlertRule, now: datetime) -> bool:
    if not rule.triggered or rule.repeat_interval <= 0:
        return False
    if rule.max_repeats > 0 and rule.repeat_count >= rule.max_repeats:
        return False
    if rule.last_sent is not None:
        next_send = rule.last_sent + timedelta(minutes=rule.repeat_interval)
        if now < next_send:
            return False
    return True


class RepeatScheduler:
    def __init__(
        self,
        rules: RuleStore,
        systems: SystemStore,
        dispatcher: NotificationDispatcher,
        *,
        app_url: str,
        interval_s: float = 60.0,
        clock: Clock = utcnow,
    ) -> None:
        self.rules = rules
        self.systems = systems
        self.dispatcher = dispatcher
        self.app_url = app_url
        self.interval_s = interval_s
        self.clock = clock
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(), name="repeat-alerts")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    def check_once(self) -> int:
        """Send every due repeat notification; returns how many were sent."""
        try:
            candidates = self.rules.find_rules(triggered=True, repeating=True)
        except Exception:
            logger.exception("Failed to query repeating alerts")
            return 0
        now = self.clock()
        sent = 0
        for rule in candidates:
            if is_due(rule, now) and self._send_repeat(rule, now):
                sent += 1
        return sent

    def _send_repeat(self, rule: AlertRule, now: datetime) -> bool:
        definition = get_metric_def(rule.name)
        if definition is None:
            logger.warning(
                "Repeating alert %s has unknown metric %s", rule.id, rule.name
            )
            return False
        system = self.systems.get_system(rule.system)
        system_name = system.name if system else rule.system

        updated = rule.copy()
        updated.repeat_count = rule.repeat_count + 1
        updated.last_sent = now
        try:
            self.rules.save_rule(updated)
        except Exception:
            logger.exception("Failed to update repeating alert %s", rule.id)
            return False

        self.dispatcher.enqueue(
            repeat_message(
                updated, definition, system_name, self.app_url, updated.repeat_count
            )
        )
        logger.info(
            "Sent repeating alert system=%s alert=%s repeat_count=%d",
            system_name,
            rule.name,
            updated.repeat_count,
        )
        return True

    async def _loop(self) -> None:
        logger.info("Starting repeat alert loop (interval=%ss)", self.interval_s)
        while True:
            try:
                start = time.monotonic()
                self.check_once()
                elapsed = time.monotonic() - start
                await asyncio.sleep(max(0.0, self.interval_s - elapsed))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Repeat alert loop error")
                await asyncio.sleep(self.interval_s)
