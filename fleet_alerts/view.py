"""View layer for formatting operator bot messages (HTML)."""

from __future__ import annotations

import html
import math
import time
from datetime import datetime

from .models.alerts import AlertHistoryEntry, AlertRule, PendingStatusAlert
from .models.bot_state import CommandStats
from .models.delivery import ChannelMetrics


def bold(text: str) -> str:
    return f"<b>{html.escape(str(text))}</b>"


def code(text: str) -> str:
    return f"<code>{html.escape(str(text))}</code>"


def pre(text: str) -> str:
    return f"<pre>{html.escape(str(text))}</pre>"


def chunk(msg: str, size: int = 4000) -> list[str]:
    """Split message into chunks ensuring no chunk exceeds size limit."""
    if len(msg) <= size:
        return [msg]

    lines = msg.splitlines()
    chunks: list[str] = []
    current = ""
    for line in lines:
        if len(line) > size:
            if current:
                chunks.append(current)
                current = ""
            start = 0
            while start < len(line):
                chunks.append(line[start : start + size])
                start += size
            continue
        added_length = len(line) + (1 if current else 0)
        if len(current) + added_length > size and current:
            chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line
    if current:
        chunks.append(current)
    return chunks


def _format_timestamp(ts: float | None) -> str:
    if not ts:
        return "never"
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(ts))


def _format_dt(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _p95(samples: list[float]) -> float:
    if not samples:
        return 0.0
    ordered = sorted(samples)
    idx = max(0, math.ceil(0.95 * len(ordered)) - 1)
    return ordered[idx]


def render_engine_status(
    *,
    running: bool,
    rules: int,
    triggered: int,
    pending: int,
    queued: int,
    dropped: int,
) -> str:
    status = "🟢 running" if running else "🔴 stopped"
    return "\n".join(
        [
            f"{bold('Alert engine:')} {status}",
            f"Rules: {rules} ({triggered} triggered)",
            f"Pending status alerts: {pending}",
            f"Notification queue: {queued} queued, {dropped} dropped",
        ]
    )


def render_command_stats(stats: dict[str, CommandStats]) -> str:
    if not stats:
        return "<i>No commands run yet.</i>"

    lines = [bold("Commands:")]
    for name, entry in sorted(stats.items()):
        line = (
            f"{code('/' + name)} {entry.runs} run(s), {entry.failures} failed, "
            f"{entry.rate_limited} throttled, slowest {entry.slowest_s * 1000:.0f}ms, "
            f"last {_format_dt(entry.last_run)}"
        )
        if entry.last_error:
            line += f"\n  <i>{html.escape(entry.last_error)}</i>"
        lines.append(line)
    return "\n".join(lines)


def render_channel_metrics(metrics: dict[str, ChannelMetrics], dropped: int) -> str:
    if not metrics and not dropped:
        return "<i>No notifications sent yet.</i>"

    lines = [bold("Delivery Channels:")]
    for name in sorted(metrics.keys()):
        entry = metrics[name]
        if name == "silenced":
            lines.append(f"{code(name)} {entry.silenced} during quiet hours")
            continue
        attempts = entry.sent + entry.failed
        avg = (entry.total_latency_s / attempts) if attempts else 0.0
        line = (
            f"{code(name)} ok {entry.sent} err {entry.failed} "
            f"avg {avg * 1000:.1f}ms p95 {_p95(entry.latencies_s) * 1000:.1f}ms "
            f"last {html.escape(_format_timestamp(entry.last_sent_ts))}"
        )
        if entry.last_error:
            line += f"\n  <i>{html.escape(entry.last_error)}</i>"
        lines.append(line)
    if dropped:
        lines.append(f"⚠️ {dropped} notification(s) dropped on a full queue")
    return "\n".join(lines)


def render_alert_rules(rules: list[AlertRule], system_names: dict[str, str]) -> str:
    if not rules:
        return "<i>No alert rules.</i>"

    lines = [bold(f"Alert rules ({len(rules)}):")]
    for rule in sorted(rules, key=lambda r: (r.system, r.name, r.filesystem)):
        system = system_names.get(rule.system, rule.system)
        state = "🔴 triggered" if rule.triggered else "🟢 ok"
        target = f" [{html.escape(rule.filesystem)}]" if rule.filesystem else ""
        line = (
            f"{code(rule.id)} {html.escape(system)} {html.escape(rule.name)}{target} "
            f"&gt; {rule.value:g} for {rule.window_minutes}m ({state})"
        )
        if rule.repeat_interval > 0:
            limit = rule.max_repeats or "∞"
            line += f" repeat {rule.repeat_interval}m {rule.repeat_count}/{limit}"
        lines.append(line)
    return "\n".join(lines)


def render_history(
    entries: list[AlertHistoryEntry], system_names: dict[str, str]
) -> str:
    if not entries:
        return "<i>No alert history.</i>"

    lines = [bold("Alert history:")]
    for entry in entries:
        system = system_names.get(entry.system, entry.system)
        marker = "🔴" if entry.is_active else "✅"
        lines.append(
            f"{marker} {html.escape(system)} {html.escape(entry.name)} "
            f"{entry.value:.2f} at {_format_dt(entry.created)}"
            + (f" solved {_format_dt(entry.solved)}" if entry.solved else "")
        )
    return "\n".join(lines)


def render_pending(entries: list[PendingStatusAlert]) -> str:
    if not entries:
        return "<i>No pending status alerts.</i>"

    lines = [bold(f"Pending status alerts ({len(entries)}):")]
    for info in sorted(entries, key=lambda e: e.expires_at):
        lines.append(
            f"• {html.escape(info.system_name)} "
            f"fires at {_format_dt(info.expires_at)}"
        )
    return "\n".join(lines)
