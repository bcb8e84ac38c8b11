"""Notification delivery dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AlertMessage:
    user_id: str
    title: str
    message: str
    link: str = ""
    link_text: str = ""
    system_id: str | None = None


@dataclass
class ChannelMetrics:
    sent: int = 0
    failed: int = 0
    silenced: int = 0
    total_latency_s: float = 0.0
    max_latency_s: float = 0.0
    latencies_s: list[float] = field(default_factory=list)
    last_error: str | None = None
    last_sent_ts: float | None = None
