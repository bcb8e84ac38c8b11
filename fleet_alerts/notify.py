"""Notification dispatcher: bounded queue, worker pool, per-channel fan-out."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

import httpx

from . import channels
from .mailer import SmtpMailer
from .models.delivery import AlertMessage, ChannelMetrics
from .store import UserSettingsStore

logger = logging.getLogger(__name__)

MAX_LATENCY_SAMPLES = 200
_EMAIL_CHANNEL = "email"

Transport = Callable[[str, str, httpx.AsyncClient], Awaitable[None]]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """Queues alert messages and delivers them on a fixed pool of workers.

    ``enqueue`` never blocks the caller. A full queue drops the message with a
    warning. Each channel failure is logged and counted, and never stops the
    other channels for the same message.
    """

    def __init__(
        self,
        store: UserSettingsStore,
        *,
        workers: int = 4,
        queue_size: int = 100,
        timeout_s: float = 10.0,
        mailer: SmtpMailer | None = None,
        transport: Transport = channels.send_to_url,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.workers = max(1, workers)
        self.timeout_s = timeout_s
        self.mailer = mailer
        self.transport = transport
        self.clock = clock
        self.queue: asyncio.Queue[AlertMessage] = asyncio.Queue(maxsize=queue_size)
        self.metrics: dict[str, ChannelMetrics] = {}
        self.dropped = 0
        self._tasks: list[asyncio.Task] = []
        self._client: httpx.AsyncClient | None = None

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._worker(idx), name=f"notify-worker-{idx}")
            for idx in range(self.workers)
        ]
        logger.info("Started %d notification workers", self.workers)

    async def stop(self, grace_s: float = 5.0) -> None:
        if self._tasks:
            try:
                await asyncio.wait_for(self.queue.join(), timeout=grace_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "Dropping %d queued notifications on shutdown", self.queue.qsize()
                )
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def enqueue(self, msg: AlertMessage) -> bool:
        try:
            self.queue.put_nowait(msg)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Notification queue full; dropping %r for user %s",
                msg.title,
                msg.user_id,
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        await self.queue.join()

    async def _worker(self, idx: int) -> None:
        while True:
            msg = await self.queue.get()
            try:
                await self.send(msg)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Notification worker %d failed on %r", idx, msg.title)
            finally:
                self.queue.task_done()

    def _http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    def metrics_for(self, channel: str) -> ChannelMetrics:
        return self.metrics.setdefault(channel, ChannelMetrics())

    def _record(
        self, channel: str, latency_s: float, ok: bool, error_msg: str | None
    ) -> None:
        metrics = self.metrics_for(channel)
        if ok:
            metrics.sent += 1
            metrics.last_sent_ts = time.time()
        else:
            metrics.failed += 1
            metrics.last_error = error_msg
        metrics.total_latency_s += latency_s
        metrics.max_latency_s = max(metrics.max_latency_s, latency_s)
        metrics.latencies_s.append(latency_s)
        if len(metrics.latencies_s) > MAX_LATENCY_SAMPLES:
            metrics.latencies_s.pop(0)

    def is_silenced(self, user_id: str, system_id: str | None) -> bool:
        try:
            windows = self.store.find_quiet_hours(user_id, system_id)
        except Exception:
            logger.exception("Failed to read quiet hours for user %s", user_id)
            return False
        now = self.clock()
        return any(window.covers(now) for window in windows)

    async def send(self, msg: AlertMessage) -> None:
        """Deliver one message to every channel configured for its user."""
        if self.is_silenced(msg.user_id, msg.system_id):
            self.metrics_for("silenced").silenced += 1
            logger.info(
                "Notification silenced user=%s system=%s title=%s",
                msg.user_id,
                msg.system_id,
                msg.title,
            )
            return
        settings = self.store.get_user_settings(msg.user_id)
        if settings is None:
            logger.debug("No notification settings for user %s", msg.user_id)
            return

        for url in settings.webhooks:
            await self.send_to_channel(
                url, msg.title, msg.message, msg.link, msg.link_text
            )

        if settings.emails:
            await self._send_email(settings.emails, msg)

    async def send_to_channel(
        self, url: str, title: str, message: str, link: str, link_text: str
    ) -> str | None:
        """Send to one channel URL; returns the error text on failure."""
        channel = channels.channel_name(url)
        start = time.perf_counter()
        try:
            prepared, body = channels.prepare_notification(
                url, title, message, link, link_text
            )
            await self.transport(prepared, body, self._http_client())
        except Exception as exc:
            self._record(channel, time.perf_counter() - start, False, str(exc))
            logger.error("Failed to send %s alert: %s", channel, exc)
            return str(exc)
        self._record(channel, time.perf_counter() - start, True, None)
        logger.info("Sent %s alert title=%s", channel, title)
        return None

    async def _send_email(self, emails: list[str], msg: AlertMessage) -> None:
        if self.mailer is None:
            logger.warning("Email recipients configured but SMTP_HOST is not set")
            return
        body = f"{msg.message}\n\n{msg.link}"
        start = time.perf_counter()
        try:
            await asyncio.to_thread(self.mailer.send, list(emails), msg.title, body)
        except Exception as exc:
            self._record(_EMAIL_CHANNEL, time.perf_counter() - start, False, str(exc))
            logger.error("Failed to send email alert: %s", exc)
            return
        self._record(_EMAIL_CHANNEL, time.perf_counter() - start, True, None)

    async def send_test_notification(self, url: str, app_url: str) -> str | None:
        return await self.send_to_channel(
            url,
            "Test Alert",
            "This is a notification from Fleet Alerts.",
            app_url,
            "View Fleet Alerts",
        )
