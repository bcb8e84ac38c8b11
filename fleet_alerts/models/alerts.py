"""Alert rule, history and pending status dataclasses."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime

HISTORY_ACTIVE = "active"
HISTORY_SOLVED = "solved"


def new_record_id() -> str:
    return secrets.token_hex(8)


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_from_str(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class AlertRule:
    user: str
    system: str
    name: str
    value: float = 0.0
    min: int = 1
    triggered: bool = False
    repeat_interval: int = 0
    max_repeats: int = 0
    repeat_count: int = 0
    last_sent: datetime | None = None
    filesystem: str = ""
    id: str = field(default_factory=new_record_id)

    @property
    def key(self) -> tuple[str, str, str, str]:
        """Uniqueness key: one rule per (user, system, name, filesystem)."""
        return (self.user, self.system, self.name, self.filesystem)

    @property
    def window_minutes(self) -> int:
        return max(1, int(self.min or 0))

    def copy(self) -> "AlertRule":
        return replace(self)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user": self.user,
            "system": self.system,
            "name": self.name,
            "value": self.value,
            "min": self.min,
            "triggered": self.triggered,
            "repeat_interval": self.repeat_interval,
            "max_repeats": self.max_repeats,
            "repeat_count": self.repeat_count,
            "last_sent": _dt_to_str(self.last_sent),
            "filesystem": self.filesystem,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlertRule":
        return cls(
            id=str(data["id"]),
            user=str(data["user"]),
            system=str(data["system"]),
            name=str(data["name"]),
            value=float(data.get("value") or 0.0),
            min=int(data.get("min") or 1),
            triggered=bool(data.get("triggered")),
            repeat_interval=int(data.get("repeat_interval") or 0),
            max_repeats=int(data.get("max_repeats") or 0),
            repeat_count=int(data.get("repeat_count") or 0),
            last_sent=_dt_from_str(data.get("last_sent")),
            filesystem=str(data.get("filesystem") or ""),
        )


@dataclass
class AlertHistoryEntry:
    alert_id: str
    user: str
    system: str
    name: str
    value: float
    created: datetime
    state: str = HISTORY_ACTIVE
    solved: datetime | None = None
    id: str = field(default_factory=new_record_id)

    @property
    def is_active(self) -> bool:
        return self.state == HISTORY_ACTIVE and self.solved is None

    def copy(self) -> "AlertHistoryEntry":
        return replace(self)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "alert_id": self.alert_id,
            "user": self.user,
            "system": self.system,
            "name": self.name,
            "value": self.value,
            "state": self.state,
            "created": _dt_to_str(self.created),
            "solved": _dt_to_str(self.solved),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlertHistoryEntry":
        return cls(
            id=str(data["id"]),
            alert_id=str(data["alert_id"]),
            user=str(data["user"]),
            system=str(data["system"]),
            name=str(data["name"]),
            value=float(data.get("value") or 0.0),
            state=str(data.get("state") or HISTORY_ACTIVE),
            created=_dt_from_str(data["created"]),
            solved=_dt_from_str(data.get("solved")),
        )


@dataclass
class PendingStatusAlert:
    """In-memory only; lost on restart."""

    rule: AlertRule
    system_name: str
    expires_at: datetime
