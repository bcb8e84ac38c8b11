"""Alert history: one active entry per rule, solved when the rule clears."""

from __future__ import annotations

import logging
from datetime import datetime

from .hysteresis import Transition
from .models.alerts import HISTORY_SOLVED, AlertHistoryEntry, AlertRule
from .store import HistoryStore

logger = logging.getLogger(__name__)


class HistoryRecorder:
    def __init__(self, store: HistoryStore) -> None:
        self.store = store

    def record(
        self, rule: AlertRule, transition: Transition, value: float, now: datetime
    ) -> AlertHistoryEntry | None:
        if transition is Transition.TRIGGER:
            return self.open(rule, value, now)
        if transition is Transition.CLEAR:
            return self.resolve(rule.id, now)
        return None

    def open(
        self, rule: AlertRule, value: float, now: datetime
    ) -> AlertHistoryEntry | None:
        existing = self.store.latest_active_history(rule.id)
        if existing is not None:
            logger.warning(
                "Alert %s already has active history entry %s; not opening another",
                rule.id,
                existing.id,
            )
            return None
        entry = AlertHistoryEntry(
            alert_id=rule.id,
            user=rule.user,
            system=rule.system,
            name=rule.name,
            value=value,
            created=now,
        )
        self.store.create_history(entry)
        return entry

    def resolve(self, alert_id: str, now: datetime) -> AlertHistoryEntry | None:
        entry = self.store.latest_active_history(alert_id)
        if entry is None:
            return None
        entry.state = HISTORY_SOLVED
        entry.solved = max(now, entry.created)
        self.store.update_history(entry)
        return entry
