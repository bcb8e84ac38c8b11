"""Alert manager: wires evaluation, debounce, repeats, history and delivery.

The collection hub calls ``handle_system_snapshot`` for every stored stats
record and ``handle_status_change`` whenever a system flips up/down.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable

from . import config
from .bulk import RuleService
from .errors import SnapshotDecodeError
from .history import HistoryRecorder
from .hysteresis import Transition, could_flip, evaluate
from .mailer import SmtpMailer
from .messages import status_message, threshold_message
from .metrics import MetricKind, extract, get_metric_def
from .models.alerts import AlertRule, PendingStatusAlert
from .models.delivery import AlertMessage
from .models.snapshot import MetricSnapshot
from .models.system import STATUS_DOWN, STATUS_UP, System
from .notify import NotificationDispatcher
from .repeat import RepeatScheduler
from .status import StatusDebounceScheduler
from .store import AlertStore
from .window import TOLERANCE, WindowResult, aggregate, has_coverage, query_start

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
_STATUS = MetricKind.STATUS.value
_STATUS_FLIPS = frozenset({(STATUS_DOWN, STATUS_UP), (STATUS_UP, STATUS_DOWN)})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _instant(rule: AlertRule, snapshot: MetricSnapshot) -> WindowResult | None:
    """Latest reading as a one-sample window (rules with a 1 minute window)."""
    return aggregate(rule, [snapshot], snapshot.created)


class AlertManager:
    def __init__(
        self,
        store: AlertStore,
        *,
        dispatcher: NotificationDispatcher | None = None,
        app_url: str | None = None,
        status_scan_interval_s: float | None = None,
        repeat_interval_s: float | None = None,
        reconcile_interval_s: float | None = None,
        clock: Clock = utcnow,
    ) -> None:
        settings = config.settings
        self.store = store
        self.clock = clock
        self.app_url = app_url or settings.APP_URL
        self.reconcile_interval_s = (
            reconcile_interval_s or settings.STATUS_RECONCILE_INTERVAL_S
        )
        self.dispatcher = dispatcher or NotificationDispatcher(
            store,
            workers=settings.NOTIFY_WORKERS,
            queue_size=settings.NOTIFY_QUEUE_SIZE,
            timeout_s=settings.NOTIFY_TIMEOUT_S,
            mailer=SmtpMailer.from_settings(settings),
            clock=clock,
        )
        self.history = HistoryRecorder(store)
        self.rules = RuleService(store, self.history, clock)
        self.status = StatusDebounceScheduler(
            self._send_down,
            self._send_up,
            scan_interval_s=status_scan_interval_s or settings.STATUS_SCAN_INTERVAL_S,
            clock=clock,
        )
        self.repeats = RepeatScheduler(
            store,
            store,
            self.dispatcher,
            app_url=self.app_url,
            interval_s=repeat_interval_s or settings.REPEAT_CHECK_INTERVAL_S,
            clock=clock,
        )
        self._reconcile_task: asyncio.Task | None = None

    # Lifecycle

    async def start(self) -> None:
        await self.dispatcher.start()
        await self.status.start()
        await self.repeats.start()
        if self._reconcile_task is None or self._reconcile_task.done():
            self._reconcile_task = asyncio.create_task(
                self._reconcile_loop(), name="status-reconcile"
            )
        logger.info("Alert manager started")

    async def stop(self) -> None:
        if self._reconcile_task is not None:
            self._reconcile_task.cancel()
            await asyncio.gather(self._reconcile_task, return_exceptions=True)
            self._reconcile_task = None
        await self.repeats.stop()
        await self.status.stop()
        await self.dispatcher.stop()
        logger.info("Alert manager stopped")

    # Threshold alerts

    async def handle_system_snapshot(
        self, system: System, snapshot: MetricSnapshot
    ) -> int:
        """Evaluate every threshold rule of ``system``; returns transitions applied."""
        try:
            rules = self.store.find_rules(system=system.id, exclude_name=_STATUS)
        except Exception:
            logger.exception("Failed to load alert rules for %s", system.name)
            return 0
        now = snapshot.created
        applied = 0
        windowed: list[AlertRule] = []

        for rule in rules:
            current = extract(rule.name, snapshot, rule.filesystem)
            if current is None or not could_flip(rule, current.value):
                continue
            if rule.window_minutes == 1:
                result = _instant(rule, snapshot)
                if result is None:
                    continue
                if await self._evaluate(system, rule, result, now):
                    applied += 1
                continue
            windowed.append(rule)

        if not windowed:
            return applied
        try:
            history = self.store.snapshots_between(
                system.id, query_start(windowed, now), now + TOLERANCE
            )
        except SnapshotDecodeError as e:
            logger.warning("Skipping windowed alerts for %s: %s", system.name, e)
            return applied
        except Exception:
            logger.exception("Failed to load stats history for %s", system.name)
            return applied
        if not history or history[-1].created < snapshot.created:
            history = [*history, snapshot]

        for rule in windowed:
            result = aggregate(rule, history, now)
            if result is None:
                continue
            if not has_coverage(result.count, rule.window_minutes):
                logger.debug(
                    "Skipping %s on %s: %d samples in %d minute window",
                    rule.name,
                    system.name,
                    result.count,
                    rule.window_minutes,
                )
                continue
            if await self._evaluate(system, rule, result, now):
                applied += 1
        return applied

    async def _evaluate(
        self, system: System, rule: AlertRule, result: WindowResult, now: datetime
    ) -> bool:
        transition = evaluate(rule, result.value)
        if transition is Transition.NONE:
            return False
        if not self._apply_transition(rule, transition, result.value, now):
            return False
        definition = get_metric_def(rule.name)
        triggered = transition is Transition.TRIGGER
        readings = [(result.value, result.descriptor)]
        if definition.kind is MetricKind.DISK and not rule.filesystem and triggered:
            # Legacy disk rules notify once per filesystem above threshold.
            readings = [
                (mean, definition.describe(fs))
                for fs, mean in sorted(result.means.items())
                if mean > rule.value
            ]
        for value, descriptor in readings:
            self._notify(
                threshold_message(
                    rule,
                    definition,
                    system.name,
                    self.app_url,
                    triggered=triggered,
                    value=value,
                    descriptor=descriptor,
                )
            )
        return True

    def _apply_transition(
        self, rule: AlertRule, transition: Transition, value: float, now: datetime
    ) -> bool:
        """Persist the flip and its history entry together, or neither."""
        updated = rule.copy()
        updated.triggered = transition is Transition.TRIGGER
        updated.repeat_count = 0
        updated.last_sent = now if updated.triggered else None
        try:
            with self.store.transaction():
                self.store.save_rule(updated)
                self.history.record(updated, transition, value, now)
        except Exception:
            logger.exception(
                "Failed to save %s transition for alert %s", transition.value, rule.id
            )
            return False
        rule.triggered = updated.triggered
        rule.repeat_count = updated.repeat_count
        rule.last_sent = updated.last_sent
        return True

    def _notify(self, msg: AlertMessage) -> None:
        self.dispatcher.enqueue(msg)

    # Status alerts

    async def handle_status_change(
        self, system: System, new_status: str, old_status: str
    ) -> None:
        """Route an up/down flip to the debounce worker.

        Only down after up and up after down count; paused or pending
        systems never produce status notifications.
        """
        if (new_status, old_status) not in _STATUS_FLIPS:
            return
        try:
            rules = self.store.find_rules(system=system.id, name=_STATUS)
        except Exception:
            logger.exception("Failed to load status alerts for %s", system.name)
            return
        for rule in rules:
            if new_status == STATUS_DOWN:
                self.status.report_down(rule, system.name)
            else:
                self.status.report_up(rule, system.name)

    async def _send_down(self, info: PendingStatusAlert) -> None:
        rule = self.store.get_rule(info.rule.id)
        if rule is None:
            logger.debug("Status alert %s was deleted before firing", info.rule.id)
            return
        if not rule.triggered and not self._apply_transition(
            rule, Transition.TRIGGER, 0.0, self.clock()
        ):
            return
        self._notify(status_message(rule, info.system_name, STATUS_DOWN, self.app_url))

    async def _send_up(self, rule: AlertRule, system_name: str) -> None:
        current = self.store.get_rule(rule.id)
        if current is None:
            return
        if current.triggered and not self._apply_transition(
            current, Transition.CLEAR, 1.0, self.clock()
        ):
            return
        self._notify(status_message(current, system_name, STATUS_UP, self.app_url))

    def resolve_status_alerts(self) -> int:
        """Clear triggered status rules whose system is currently up."""
        resolved = 0
        for rule in self.store.find_rules(name=_STATUS, triggered=True):
            system = self.store.get_system(rule.system)
            if system is None or system.status != STATUS_UP:
                continue
            if self.status.is_pending(rule.id):
                continue
            if self._apply_transition(rule, Transition.CLEAR, 1.0, self.clock()):
                resolved += 1
        if resolved:
            logger.info("Resolved %d stale status alerts", resolved)
        return resolved

    async def _reconcile_loop(self) -> None:
        while True:
            try:
                start = time.monotonic()
                self.resolve_status_alerts()
                elapsed = time.monotonic() - start
                await asyncio.sleep(max(0.0, self.reconcile_interval_s - elapsed))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Status reconcile loop error")
                await asyncio.sleep(self.reconcile_interval_s)

    # Operations for the API / ops tooling

    async def upsert_user_alerts(self, user_id: str, **request) -> int:
        return await self.rules.upsert_user_alerts(user_id, **request)

    async def delete_user_alerts(self, user_id: str, **request) -> int:
        return await self.rules.delete_user_alerts(user_id, **request)

    async def flush_pending_status_alerts(self) -> list[AlertRule]:
        return await self.status.flush_pending()

    async def force_expire_pending_status_alerts(self) -> int:
        return await self.status.force_expire_pending()

    def pending_status_alert_count(self) -> int:
        return self.status.pending_count()

    async def send_test_notification(self, url: str) -> str | None:
        return await self.dispatcher.send_test_notification(url, self.app_url)
