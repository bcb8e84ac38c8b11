"""Record stores consumed by the alert engine.

The protocols describe what the engine needs from the persistence layer.
``MemoryStore`` implements all of them in memory (optionally mirrored to a
JSON file) and is what the bot process and the tests run against.
"""

from __future__ import annotations

import bisect
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import ContextManager, Iterator, NamedTuple, Protocol

from .errors import StoreError
from .models.alerts import AlertHistoryEntry, AlertRule
from .models.settings import QuietHoursWindow, UserNotificationSettings
from .models.snapshot import MetricSnapshot
from .models.system import System

logger = logging.getLogger(__name__)

_SNAPSHOT_RETENTION = timedelta(hours=2)


class _StatsRecord(NamedTuple):
    created: datetime
    payload: object


class RuleStore(Protocol):
    def find_rules(
        self,
        *,
        system: str | None = None,
        user: str | None = None,
        name: str | None = None,
        exclude_name: str | None = None,
        triggered: bool | None = None,
        repeating: bool = False,
    ) -> list[AlertRule]: ...

    def get_rule(self, rule_id: str) -> AlertRule | None: ...

    def find_rule(
        self, user: str, system: str, name: str, filesystem: str = ""
    ) -> AlertRule | None: ...

    def save_rule(self, rule: AlertRule) -> None: ...

    def delete_rule(self, rule_id: str) -> bool: ...


class SnapshotStore(Protocol):
    def snapshots_between(
        self, system: str, start: datetime, end: datetime
    ) -> list[MetricSnapshot]: ...


class HistoryStore(Protocol):
    def create_history(self, entry: AlertHistoryEntry) -> None: ...

    def latest_active_history(self, alert_id: str) -> AlertHistoryEntry | None: ...

    def update_history(self, entry: AlertHistoryEntry) -> None: ...

    def list_history(
        self, user: str | None = None, limit: int = 20
    ) -> list[AlertHistoryEntry]: ...


class SystemStore(Protocol):
    def get_system(self, system_id: str) -> System | None: ...

    def find_systems(self, status: str | None = None) -> list[System]: ...


class UserSettingsStore(Protocol):
    def get_user_settings(self, user: str) -> UserNotificationSettings | None: ...

    def find_quiet_hours(
        self, user: str, system: str | None = None
    ) -> list[QuietHoursWindow]: ...


class AlertStore(
    RuleStore, SnapshotStore, HistoryStore, SystemStore, UserSettingsStore, Protocol
):
    def transaction(self) -> ContextManager[object]: ...


class MemoryStore:
    """Thread-safe in-memory implementation of every store protocol."""

    def __init__(self, state_file: str | Path | None = None) -> None:
        self._lock = threading.RLock()
        self._rules: dict[str, AlertRule] = {}
        self._history: list[AlertHistoryEntry] = []
        self._systems: dict[str, System] = {}
        self._user_settings: dict[str, UserNotificationSettings] = {}
        self._quiet_hours: list[QuietHoursWindow] = []
        self._snapshots: dict[str, list[_StatsRecord]] = {}
        self._state_file = Path(state_file) if state_file else None
        self._in_transaction = 0

    # Rules

    def find_rules(
        self,
        *,
        system: str | None = None,
        user: str | None = None,
        name: str | None = None,
        exclude_name: str | None = None,
        triggered: bool | None = None,
        repeating: bool = False,
    ) -> list[AlertRule]:
        with self._lock:
            out = []
            for rule in self._rules.values():
                if system is not None and rule.system != system:
                    continue
                if user is not None and rule.user != user:
                    continue
                if name is not None and rule.name != name:
                    continue
                if exclude_name is not None and rule.name == exclude_name:
                    continue
                if triggered is not None and rule.triggered != triggered:
                    continue
                if repeating and rule.repeat_interval <= 0:
                    continue
                out.append(rule.copy())
            return out

    def get_rule(self, rule_id: str) -> AlertRule | None:
        with self._lock:
            rule = self._rules.get(rule_id)
            return rule.copy() if rule else None

    def find_rule(
        self, user: str, system: str, name: str, filesystem: str = ""
    ) -> AlertRule | None:
        key = (user, system, name, filesystem or "")
        with self._lock:
            for rule in self._rules.values():
                if rule.key == key:
                    return rule.copy()
        return None

    def save_rule(self, rule: AlertRule) -> None:
        with self._lock:
            for other in self._rules.values():
                if other.key == rule.key and other.id != rule.id:
                    raise StoreError(
                        f"alert rule already exists for {rule.name} on {rule.system}"
                    )
            self._rules[rule.id] = rule.copy()
            self._persist()

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock:
            removed = self._rules.pop(rule_id, None) is not None
            if removed:
                self._persist()
            return removed

    # Snapshots

    def add_snapshot(self, snapshot: MetricSnapshot) -> None:
        self.add_stats_record(snapshot.system, snapshot.created, snapshot.to_payload())

    def add_stats_record(self, system: str, created: datetime, payload: object) -> None:
        """Store one raw stats record as the hub writes it (decoded on read)."""
        with self._lock:
            series = self._snapshots.setdefault(system, [])
            keys = [r.created for r in series]
            series.insert(
                bisect.bisect_right(keys, created), _StatsRecord(created, payload)
            )
            cutoff = series[-1].created - _SNAPSHOT_RETENTION
            while series and series[0].created < cutoff:
                series.pop(0)

    def snapshots_between(
        self, system: str, start: datetime, end: datetime
    ) -> list[MetricSnapshot]:
        """Decode stored records with ``start < created <= end``.

        Raises SnapshotDecodeError if any record in range is malformed.
        """
        with self._lock:
            records = [
                r for r in self._snapshots.get(system, []) if start < r.created <= end
            ]
        return [
            MetricSnapshot.from_payload(system, r.created, r.payload) for r in records
        ]

    # History

    def create_history(self, entry: AlertHistoryEntry) -> None:
        with self._lock:
            self._history.append(entry.copy())
            self._persist()

    def latest_active_history(self, alert_id: str) -> AlertHistoryEntry | None:
        with self._lock:
            active = [
                e for e in self._history if e.alert_id == alert_id and e.is_active
            ]
            if not active:
                return None
            return max(active, key=lambda e: e.created).copy()

    def update_history(self, entry: AlertHistoryEntry) -> None:
        with self._lock:
            for idx, existing in enumerate(self._history):
                if existing.id == entry.id:
                    self._history[idx] = entry.copy()
                    self._persist()
                    return
            raise StoreError(f"history entry {entry.id} not found")

    def list_history(
        self, user: str | None = None, limit: int = 20
    ) -> list[AlertHistoryEntry]:
        with self._lock:
            entries = [e for e in self._history if user is None or e.user == user]
            entries.sort(key=lambda e: e.created, reverse=True)
            return [e.copy() for e in entries[: max(0, limit)]]

    # Systems

    def get_system(self, system_id: str) -> System | None:
        with self._lock:
            return self._systems.get(system_id)

    def find_systems(self, status: str | None = None) -> list[System]:
        with self._lock:
            return [
                s
                for s in self._systems.values()
                if status is None or s.status == status
            ]

    def save_system(self, system: System) -> None:
        with self._lock:
            self._systems[system.id] = system
            self._persist()

    # User settings

    def get_user_settings(self, user: str) -> UserNotificationSettings | None:
        with self._lock:
            return self._user_settings.get(user)

    def set_user_settings(self, user: str, settings: UserNotificationSettings) -> None:
        with self._lock:
            self._user_settings[user] = settings
            self._persist()

    def find_quiet_hours(
        self, user: str, system: str | None = None
    ) -> list[QuietHoursWindow]:
        with self._lock:
            return [
                w
                for w in self._quiet_hours
                if w.user == user and w.applies_to(system)
            ]

    def add_quiet_hours(self, window: QuietHoursWindow) -> None:
        with self._lock:
            self._quiet_hours.append(window)
            self._persist()

    # Transactions and persistence

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        """All-or-nothing block over rules and history."""
        with self._lock:
            rules = {k: v.copy() for k, v in self._rules.items()}
            history = [e.copy() for e in self._history]
            self._in_transaction += 1
            try:
                yield self
            except BaseException:
                self._rules = rules
                self._history = history
                raise
            finally:
                self._in_transaction -= 1
            self._persist()

    def _persist(self) -> None:
        if self._state_file is None or self._in_transaction:
            return
        try:
            self._state_file.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "rules": [r.to_dict() for r in self._rules.values()],
                "history": [e.to_dict() for e in self._history],
                "systems": [s.to_dict() for s in self._systems.values()],
                "user_settings": {
                    user: s.to_dict() for user, s in self._user_settings.items()
                },
                "quiet_hours": [w.to_dict() for w in self._quiet_hours],
            }
            self._state_file.write_text(json.dumps(data, indent=2))
        except Exception:
            logger.exception("Failed to save alert state")

    def load_state(self) -> None:
        """Load persisted state from disk."""
        if self._state_file is None:
            return
        try:
            if not self._state_file.exists():
                return
            data = json.loads(self._state_file.read_text())
            with self._lock:
                self._rules = {
                    r.id: r for r in map(AlertRule.from_dict, data.get("rules", []))
                }
                self._history = [
                    AlertHistoryEntry.from_dict(e) for e in data.get("history", [])
                ]
                self._systems = {
                    s.id: s for s in map(System.from_dict, data.get("systems", []))
                }
                self._user_settings = {
                    user: UserNotificationSettings.from_dict(s)
                    for user, s in (data.get("user_settings") or {}).items()
                }
                self._quiet_hours = [
                    QuietHoursWindow.from_dict(w) for w in data.get("quiet_hours", [])
                ]
            logger.info("Loaded alert state from %s", self._state_file)
        except Exception:
            logger.exception("Failed to load alert state")
