"""Notification titles, bodies and links."""

from __future__ import annotations

from urllib.parse import quote

from .metrics import MetricDef, MetricKind
from .models.alerts import AlertRule
from .models.delivery import AlertMessage

_STATUS_EMOJI = {"up": "✅", "down": "\U0001F534"}


def system_link(app_url: str, system_id: str) -> str:
    return f"{app_url.rstrip('/')}/system/{quote(system_id, safe='')}"


def _minutes_label(minutes: int) -> str:
    return "minute" if minutes == 1 else "minutes"


def threshold_message(
    rule: AlertRule,
    definition: MetricDef,
    system_name: str,
    app_url: str,
    *,
    triggered: bool,
    value: float,
    descriptor: str,
) -> AlertMessage:
    direction = "above" if triggered else "below"
    minutes = rule.window_minutes
    title = f"{system_name} {definition.title_label} {direction} threshold"
    body = (
        f"{descriptor or definition.label} averaged {value:.2f}{definition.unit} "
        f"for the previous {minutes} {_minutes_label(minutes)}."
    )
    return AlertMessage(
        user_id=rule.user,
        title=title,
        message=body,
        link=system_link(app_url, rule.system),
        link_text=f"View {system_name}",
        system_id=rule.system,
    )


def status_message(
    rule: AlertRule, system_name: str, status: str, app_url: str
) -> AlertMessage:
    emoji = _STATUS_EMOJI.get(status, "")
    message = f"Connection to {system_name} is {status}"
    return AlertMessage(
        user_id=rule.user,
        title=f"{message} {emoji}".rstrip(),
        message=message,
        link=system_link(app_url, rule.system),
        link_text=f"View {system_name}",
        system_id=rule.system,
    )


def repeat_message(
    rule: AlertRule, definition: MetricDef, system_name: str, app_url: str, repeat: int
) -> AlertMessage:
    if definition.kind is MetricKind.STATUS:
        title = f"Connection to {system_name} is still down (repeat {repeat})"
        body = (
            f"{system_name} is still down. "
            f"This is repeat notification #{repeat}."
        )
    else:
        title = (
            f"{system_name} {definition.title_label} still above threshold "
            f"(repeat {repeat})"
        )
        body = (
            f"{definition.label} is still above the threshold of {rule.value:.2f}. "
            f"This is repeat notification #{repeat}."
        )
    return AlertMessage(
        user_id=rule.user,
        title=title,
        message=body,
        link=system_link(app_url, rule.system),
        link_text=f"View {system_name}",
        system_id=rule.system,
    )
