"""Windowed aggregation of historical snapshots for threshold alerts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from .metrics import MetricKind, SINGLE, get_metric_def, samples
from .models.alerts import AlertRule
from .models.snapshot import MetricSnapshot

logger = logging.getLogger(__name__)

# Absorbs collection jitter around the window edges.
TOLERANCE = timedelta(seconds=10)
# Extra history fetched before the oldest window start.
QUERY_BUFFER = timedelta(seconds=90)
# A window needs at least minutes / COVERAGE_DIVISOR contributing snapshots.
COVERAGE_DIVISOR = 1.2


@dataclass
class WindowResult:
    value: float
    count: int
    descriptor: str
    means: dict[str, float] = field(default_factory=dict)


def window_start(rule: AlertRule, now: datetime) -> datetime:
    return now - timedelta(minutes=rule.window_minutes)


def query_start(rules: Iterable[AlertRule], now: datetime) -> datetime:
    oldest = min((window_start(rule, now) for rule in rules), default=now)
    return oldest - QUERY_BUFFER


def in_window(snapshot: MetricSnapshot, start: datetime, now: datetime) -> bool:
    created = snapshot.created
    return created - TOLERANCE >= start and created <= now + TOLERANCE


def has_coverage(count: int, window_minutes: int) -> bool:
    return count >= window_minutes / COVERAGE_DIVISOR


def aggregate(
    rule: AlertRule, snapshots: Iterable[MetricSnapshot], now: datetime
) -> WindowResult | None:
    """Combine the snapshots inside the rule's window into one value.

    ``snapshots`` must be ordered by creation time. Returns None when nothing
    in the window carries data for the rule's metric.
    """
    definition = get_metric_def(rule.name)
    if definition is None or definition.sampler is None:
        return None
    start = window_start(rule, now)
    sums: dict[str, float] = {}
    counts: dict[str, int] = {}
    contributing = 0
    for snapshot in snapshots:
        if not in_window(snapshot, start, now):
            continue
        readings = samples(definition, snapshot, rule.filesystem)
        if not readings:
            continue
        contributing += 1
        for key, value in readings.items():
            sums[key] = sums.get(key, 0.0) + value
            counts[key] = counts.get(key, 0) + 1
    if not contributing:
        return None

    means = {key: sums[key] / counts[key] for key in sums}
    if definition.kind in (MetricKind.DISK, MetricKind.TEMPERATURE):
        # Alert on the filesystem / sensor with the highest window mean.
        key = max(means, key=means.__getitem__)
        return WindowResult(
            value=means[key],
            count=contributing,
            descriptor=definition.describe(key),
            means=means,
        )
    return WindowResult(
        value=means[SINGLE],
        count=contributing,
        descriptor=definition.label,
        means=means,
    )
