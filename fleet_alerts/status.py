"""Debounced up/down notifications for Status rules.

A host going down starts a grace period per rule; the "down" notification
only fires once it expires. Recovering inside the grace period cancels it
silently. The pending map is owned by one worker task: callers only enqueue
requests, so the evaluation path and the periodic scan never race.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from .models.alerts import AlertRule, PendingStatusAlert

logger = logging.getLogger(__name__)

_ACTION_DOWN = "down"
_ACTION_UP = "up"
_ACTION_FLUSH = "flush"
_ACTION_FORCE_EXPIRE = "force_expire"

DownHandler = Callable[[PendingStatusAlert], Awaitable[None]]
UpHandler = Callable[[AlertRule, str], Awaitable[None]]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _StatusTask:
    action: str
    rule: AlertRule | None = None
    system_name: str = ""
    result: asyncio.Future | None = None


def _resolve(task: _StatusTask, value: object) -> None:
    if task.result is not None and not task.result.done():
        task.result.set_result(value)


class StatusDebounceScheduler:
    def __init__(
        self,
        on_down: DownHandler,
        on_up: UpHandler,
        *,
        scan_interval_s: float = 15.0,
        clock: Clock = utcnow,
    ) -> None:
        self.on_down = on_down
        self.on_up = on_up
        self.scan_interval_s = scan_interval_s
        self.clock = clock
        self.queue: asyncio.Queue[_StatusTask] = asyncio.Queue()
        self._pending: dict[str, PendingStatusAlert] = {}
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, rule_id: str) -> bool:
        return rule_id in self._pending

    def pending_entries(self) -> list[PendingStatusAlert]:
        return list(self._pending.values())

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._worker(), name="status-debounce")
        logger.info(
            "Starting status debounce worker (scan interval=%ss)", self.scan_interval_s
        )

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        dropped = 0
        while not self.queue.empty():
            task = self.queue.get_nowait()
            if task.result is not None and not task.result.done():
                task.result.cancel()
            self.queue.task_done()
            dropped += 1
        if dropped:
            logger.info("Dropped %d unhandled status requests", dropped)
        if self._pending:
            logger.info("Discarding %d pending status alerts", len(self._pending))
        self._pending.clear()

    def report_down(self, rule: AlertRule, system_name: str) -> None:
        self.queue.put_nowait(_StatusTask(_ACTION_DOWN, rule, system_name))

    def report_up(self, rule: AlertRule, system_name: str) -> None:
        self.queue.put_nowait(_StatusTask(_ACTION_UP, rule, system_name))

    async def join(self) -> None:
        """Wait until every queued request has been handled."""
        await self.queue.join()

    async def flush_pending(self) -> list[AlertRule]:
        """Fire every expired pending alert now; returns the fired rules."""
        return await self._request(_ACTION_FLUSH)

    async def force_expire_pending(self) -> int:
        """Mark every pending alert as expired; returns how many were touched."""
        return await self._request(_ACTION_FORCE_EXPIRE)

    async def _request(self, action: str):
        if not self.running:
            raise RuntimeError("status debounce worker is not running")
        result = asyncio.get_running_loop().create_future()
        self.queue.put_nowait(_StatusTask(action, result=result))
        return await result

    async def _worker(self) -> None:
        loop = asyncio.get_running_loop()
        next_scan = loop.time() + self.scan_interval_s
        while True:
            timeout = max(0.0, next_scan - loop.time())
            try:
                task = await asyncio.wait_for(self.queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                await self._fire_expired()
                next_scan = loop.time() + self.scan_interval_s
                continue
            try:
                await self._handle(task)
            except asyncio.CancelledError:
                if task.result is not None:
                    task.result.cancel()
                raise
            except Exception as exc:
                logger.exception("Status task %s failed", task.action)
                if task.result is not None and not task.result.done():
                    task.result.set_exception(exc)
            finally:
                self.queue.task_done()

    async def _handle(self, task: _StatusTask) -> None:
        if task.action == _ACTION_DOWN:
            self._schedule(task.rule, task.system_name)
        elif task.action == _ACTION_UP:
            await self._recover(task.rule, task.system_name)
        elif task.action == _ACTION_FLUSH:
            _resolve(task, await self._fire_expired())
        elif task.action == _ACTION_FORCE_EXPIRE:
            past = self.clock() - timedelta(seconds=1)
            for info in self._pending.values():
                info.expires_at = past
            _resolve(task, len(self._pending))

    def _schedule(self, rule: AlertRule, system_name: str) -> None:
        if rule.id in self._pending:
            return
        delay = timedelta(minutes=rule.window_minutes)
        self._pending[rule.id] = PendingStatusAlert(
            rule=rule, system_name=system_name, expires_at=self.clock() + delay
        )
        logger.debug("Scheduled down alert for %s in %s", system_name, delay)

    async def _recover(self, rule: AlertRule, system_name: str) -> None:
        if self._pending.pop(rule.id, None) is not None:
            logger.info(
                "%s recovered inside the grace period; down alert cancelled",
                system_name,
            )
            return
        await self.on_up(rule, system_name)

    async def _fire_expired(self) -> list[AlertRule]:
        now = self.clock()
        expired = [info for info in self._pending.values() if now >= info.expires_at]
        fired: list[AlertRule] = []
        for info in expired:
            self._pending.pop(info.rule.id, None)
            try:
                await self.on_down(info)
            except Exception:
                logger.exception("Failed to send down alert for %s", info.system_name)
                continue
            fired.append(info.rule)
        return fired
