"""Trigger/clear decisions for threshold alerts."""

from __future__ import annotations

from enum import Enum

from .models.alerts import AlertRule


class Transition(str, Enum):
    NONE = "none"
    TRIGGER = "trigger"
    CLEAR = "clear"


def evaluate(rule: AlertRule, value: float) -> Transition:
    # Strictly above triggers, at-or-below clears; a value sitting on the
    # threshold is "not triggered".
    if not rule.triggered and value > rule.value:
        return Transition.TRIGGER
    if rule.triggered and value <= rule.value:
        return Transition.CLEAR
    return Transition.NONE


def could_flip(rule: AlertRule, value: float) -> bool:
    """Cheap pre-check on the latest reading before any history is read."""
    return evaluate(rule, value) is not Transition.NONE
