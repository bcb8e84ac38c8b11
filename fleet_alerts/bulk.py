"""Bulk create/update/delete of one alert across many systems."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Iterable

from .errors import AlertPermissionError, InvalidRequestError
from .history import HistoryRecorder
from .metrics import parse_kind
from .models.alerts import AlertRule
from .store import AlertStore

logger = logging.getLogger(__name__)

RuleKey = tuple[str, str, str, str]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuleLocks:
    """One asyncio lock per (user, system, name, filesystem) key.

    A key's lock lives only while some batch holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[RuleKey, asyncio.Lock] = {}
        self._users: dict[RuleKey, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, keys: Iterable[RuleKey]) -> AsyncIterator[None]:
        # Sorted acquisition so overlapping batches cannot deadlock.
        ordered = sorted(set(keys))
        for key in ordered:
            self._locks.setdefault(key, asyncio.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        acquired: list[asyncio.Lock] = []
        try:
            for key in ordered:
                lock = self._locks[key]
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]


class RuleService:
    def __init__(
        self, store: AlertStore, history: HistoryRecorder, clock: Clock = utcnow
    ) -> None:
        self.store = store
        self.history = history
        self.clock = clock
        self.locks = RuleLocks()

    def _validate(self, user_id: str, name: str, systems: list[str]) -> str:
        if not user_id:
            raise InvalidRequestError("missing user")
        kind = parse_kind(name)
        if kind is None:
            raise InvalidRequestError(f"unknown alert name: {name!r}")
        if not systems:
            raise InvalidRequestError("no systems given")
        return kind.value

    def _authorize(self, user_id: str, systems: list[str]) -> None:
        """Reject the whole batch if any target is not the user's."""
        for system_id in systems:
            system = self.store.get_system(system_id)
            if system is None or not system.owned_by(user_id):
                raise AlertPermissionError(
                    f"user {user_id} may not manage alerts for system {system_id}"
                )

    async def upsert_user_alerts(
        self,
        user_id: str,
        name: str,
        value: float,
        min: int,
        systems: list[str],
        *,
        overwrite: bool = False,
        repeat_interval: int | None = None,
        max_repeats: int | None = None,
        filesystem: str = "",
    ) -> int:
        """Create or update one rule per system; returns how many were written.

        Existing rules are left alone unless ``overwrite`` is set.
        """
        name = self._validate(user_id, name, systems)
        self._authorize(user_id, systems)
        keys = [(user_id, s, name, filesystem) for s in systems]
        written = 0
        async with self.locks.hold(keys):
            with self.store.transaction():
                for system_id in dict.fromkeys(systems):
                    rule = self.store.find_rule(user_id, system_id, name, filesystem)
                    if rule is not None and not overwrite:
                        continue
                    if rule is None:
                        rule = AlertRule(
                            user=user_id,
                            system=system_id,
                            name=name,
                            filesystem=filesystem,
                        )
                    rule.value = float(value)
                    rule.min = int(min)
                    if repeat_interval is not None:
                        rule.repeat_interval = int(repeat_interval)
                    if max_repeats is not None:
                        rule.max_repeats = int(max_repeats)
                    self.store.save_rule(rule)
                    written += 1
        logger.info(
            "Upserted %d %s alert(s) for user %s (overwrite=%s)",
            written,
            name,
            user_id,
            overwrite,
        )
        return written

    async def delete_user_alerts(
        self, user_id: str, name: str, systems: list[str], filesystem: str = ""
    ) -> int:
        """Delete matching rules; returns how many were actually removed."""
        name = self._validate(user_id, name, systems)
        self._authorize(user_id, systems)
        keys = [(user_id, s, name, filesystem) for s in systems]
        deleted = 0
        async with self.locks.hold(keys):
            with self.store.transaction():
                for system_id in dict.fromkeys(systems):
                    rule = self.store.find_rule(user_id, system_id, name, filesystem)
                    if rule is None:
                        continue
                    if rule.triggered:
                        self.history.resolve(rule.id, self.clock())
                    if self.store.delete_rule(rule.id):
                        deleted += 1
        logger.info("Deleted %d %s alert(s) for user %s", deleted, name, user_id)
        return deleted
