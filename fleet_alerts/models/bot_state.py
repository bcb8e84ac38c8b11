"""Operator bot runtime state: the alert manager handle, TOTP unlocks and
per-command counters."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..manager import AlertManager

AUTH_TTL_S = 24 * 60 * 60


@dataclass
class AuthGrants:
    """Operators unlocked for rule-changing commands (user id -> expiry).

    Expiries are monotonic timestamps; an expired grant is dropped on lookup.
    """

    ttl_s: float = AUTH_TTL_S
    expiries: dict[int, float] = field(default_factory=dict)

    def grant(self, user_id: int, now: float | None = None) -> float:
        now = time.monotonic() if now is None else now
        self.expiries[user_id] = now + self.ttl_s
        return self.expiries[user_id]

    def revoke(self, user_id: int) -> bool:
        return self.expiries.pop(user_id, None) is not None

    def is_active(self, user_id: int, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        expiry = self.expiries.get(user_id)
        if expiry is None:
            return False
        if expiry <= now:
            del self.expiries[user_id]
            return False
        return True

    def __contains__(self, user_id: int) -> bool:
        return user_id in self.expiries


@dataclass
class CommandStats:
    runs: int = 0
    failures: int = 0
    rate_limited: int = 0
    slowest_s: float = 0.0
    last_error: str | None = None
    last_run: datetime | None = None


@dataclass
class BotState:
    manager: "AlertManager | None" = None
    tasks: dict[str, object] = field(default_factory=dict)
    auth: AuthGrants = field(default_factory=AuthGrants)
    commands: dict[str, CommandStats] = field(default_factory=dict)
    # chat id -> monotonic time of its last accepted command
    last_command_at: dict[int, float] = field(default_factory=dict)

    def stats_for(self, name: str) -> CommandStats:
        return self.commands.setdefault(name, CommandStats())

    def record_run(
        self, name: str, duration_s: float, error: BaseException | None = None
    ) -> None:
        stats = self.stats_for(name)
        stats.runs += 1
        stats.last_run = datetime.now(timezone.utc)
        stats.slowest_s = max(stats.slowest_s, duration_s)
        if error is not None:
            stats.failures += 1
            stats.last_error = f"{type(error).__name__}: {error}"


BOT_STATE_KEY = "state"
