"""Command registry (single source of truth for help + wiring)."""

from __future__ import annotations

from .models.command_spec import CommandSpec, Group

_INFO_COMMANDS = (
    CommandSpec("start", "Info", "/start", "engine status and this menu", "cmd_start"),
    CommandSpec("help", "Info", "/help", "this menu", "cmd_help"),
    CommandSpec(
        "auth",
        "Info",
        "/auth <code>",
        "unlock rule changes for 24 hours",
        "cmd_auth",
    ),
    CommandSpec("logout", "Info", "/logout", "lock rule changes again", "cmd_logout"),
    CommandSpec(
        "metrics",
        "Info",
        "/metrics",
        "engine, delivery and command stats",
        "cmd_metrics",
    ),
)

_ALERT_COMMANDS = (
    CommandSpec(
        "alerts",
        "Alerts",
        "/alerts <user> [system]",
        "list a user's alert rules",
        "cmd_alerts",
    ),
    CommandSpec(
        "alertset",
        "Alerts",
        "/alertset <user> <metric> <threshold> <minutes> <system[,system]> "
        "[fs=<name>] [repeat=<min>] [max=<n>] [keep]",
        "create or update one alert on many systems",
        "cmd_alertset",
        sensitive=True,
    ),
    CommandSpec(
        "alertdel",
        "Alerts",
        "/alertdel <user> <metric> <system[,system]> [fs=<name>]",
        "delete one alert from many systems",
        "cmd_alertdel",
        sensitive=True,
    ),
    CommandSpec(
        "history",
        "Alerts",
        "/history <user> [limit]",
        "recent alert history",
        "cmd_history",
    ),
    CommandSpec(
        "pending",
        "Alerts",
        "/pending",
        "status alerts waiting out their grace period",
        "cmd_pending",
    ),
    CommandSpec(
        "flushpending",
        "Alerts",
        "/flushpending",
        "fire expired pending status alerts now",
        "cmd_flushpending",
        sensitive=True,
    ),
    CommandSpec(
        "forceexpire",
        "Alerts",
        "/forceexpire",
        "expire every pending status alert",
        "cmd_forceexpire",
        sensitive=True,
    ),
)

_DELIVERY_COMMANDS = (
    CommandSpec(
        "testnotify",
        "Delivery",
        "/testnotify <url>",
        "send a test alert to one channel URL",
        "cmd_testnotify",
        sensitive=True,
    ),
    CommandSpec(
        "channels",
        "Delivery",
        "/channels",
        "delivery stats per channel",
        "cmd_channels",
    ),
)

COMMANDS: tuple[CommandSpec, ...] = (
    *_INFO_COMMANDS,
    *_ALERT_COMMANDS,
    *_DELIVERY_COMMANDS,
)

GROUP_ORDER: tuple[Group, ...] = ("Alerts", "Delivery", "Info")
