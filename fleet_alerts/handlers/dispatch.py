"""Dispatch layer: applies rate limiting then calls the real handlers."""

from __future__ import annotations

from . import alerts, delivery, meta
from .common import rate_limit

# Meta
cmd_start = rate_limit(meta.cmd_start, name="start")
cmd_help = rate_limit(meta.cmd_help, name="help")
cmd_auth = rate_limit(meta.cmd_auth, name="auth")
cmd_logout = rate_limit(meta.cmd_logout, name="logout")
cmd_metrics = rate_limit(meta.cmd_metrics, name="metrics")

# Alerts
cmd_alerts = rate_limit(alerts.cmd_alerts, name="alerts")
cmd_alertset = rate_limit(alerts.cmd_alertset, name="alertset")
cmd_alertdel = rate_limit(alerts.cmd_alertdel, name="alertdel")
cmd_history = rate_limit(alerts.cmd_history, name="history")
cmd_pending = rate_limit(alerts.cmd_pending, name="pending")
cmd_flushpending = rate_limit(alerts.cmd_flushpending, name="flushpending")
cmd_forceexpire = rate_limit(alerts.cmd_forceexpire, name="forceexpire")

# Delivery
cmd_testnotify = rate_limit(delivery.cmd_testnotify, name="testnotify")
cmd_channels = rate_limit(delivery.cmd_channels, name="channels")
