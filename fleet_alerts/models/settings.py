"""User notification settings and quiet hours dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

QUIET_DAILY = "daily"
QUIET_ONE_TIME = "one-time"


@dataclass
class UserNotificationSettings:
    emails: list[str] = field(default_factory=list)
    webhooks: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"emails": list(self.emails), "webhooks": list(self.webhooks)}

    @classmethod
    def from_dict(cls, data: dict) -> "UserNotificationSettings":
        return cls(
            emails=[str(e) for e in data.get("emails") or []],
            webhooks=[str(w) for w in data.get("webhooks") or []],
        )


@dataclass
class QuietHoursWindow:
    user: str
    start: datetime
    end: datetime
    type: str = QUIET_ONE_TIME
    system: str = ""

    def applies_to(self, system_id: str | None) -> bool:
        return not self.system or self.system == (system_id or "")

    def covers(self, now: datetime) -> bool:
        if self.type == QUIET_DAILY:
            start_min = self.start.hour * 60 + self.start.minute
            end_min = self.end.hour * 60 + self.end.minute
            now_min = now.hour * 60 + now.minute
            if end_min < start_min:
                # crosses midnight, e.g. 23:00 - 01:00
                return now_min >= start_min or now_min < end_min
            return start_min <= now_min < end_min
        return self.start <= now < self.end

    def to_dict(self) -> dict[str, object]:
        return {
            "user": self.user,
            "system": self.system,
            "type": self.type,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuietHoursWindow":
        return cls(
            user=str(data["user"]),
            system=str(data.get("system") or ""),
            type=str(data.get("type") or QUIET_ONE_TIME),
            start=datetime.fromisoformat(data["start"]),
            end=datetime.fromisoformat(data["end"]),
        )
