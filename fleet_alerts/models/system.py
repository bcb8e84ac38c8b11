"""Monitored system dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field

STATUS_UP = "up"
STATUS_DOWN = "down"
STATUS_PAUSED = "paused"
STATUS_PENDING = "pending"


@dataclass
class System:
    id: str
    name: str
    status: str = STATUS_PENDING
    users: set[str] = field(default_factory=set)

    def owned_by(self, user_id: str) -> bool:
        return user_id in self.users

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "users": sorted(self.users),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "System":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            status=str(data.get("status") or STATUS_PENDING),
            users=set(data.get("users") or []),
        )
