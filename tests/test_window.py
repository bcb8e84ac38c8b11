from datetime import timedelta

import pytest

from conftest import T0, snapshot_at

from fleet_alerts.models.alerts import AlertRule
from fleet_alerts.models.snapshot import FsStats
from fleet_alerts.window import (
    QUERY_BUFFER,
    aggregate,
    has_coverage,
    in_window,
    query_start,
    window_start,
)


def _rule(name: str = "CPU", minutes: int = 5, **kwargs) -> AlertRule:
    return AlertRule(user="u1", system="sys1", name=name, min=minutes, **kwargs)


def _series(name: str, values: list[float], end=T0) -> list:
    start = end - timedelta(minutes=len(values) - 1)
    return [
        snapshot_at(start + timedelta(minutes=i), **{name: v})
        for i, v in enumerate(values)
    ]


def test_in_window_applies_tolerance() -> None:
    start = T0 - timedelta(minutes=5)

    assert in_window(snapshot_at(start + timedelta(seconds=10)), start, T0)
    assert not in_window(snapshot_at(start + timedelta(seconds=9)), start, T0)
    assert in_window(snapshot_at(T0 + timedelta(seconds=10)), start, T0)
    assert not in_window(snapshot_at(T0 + timedelta(seconds=11)), start, T0)


def test_query_start_covers_oldest_window() -> None:
    rules = [_rule(minutes=5), _rule(name="Memory", minutes=15)]

    assert query_start(rules, T0) == T0 - timedelta(minutes=15) - QUERY_BUFFER


def test_window_minutes_floor_at_one() -> None:
    assert window_start(_rule(minutes=0), T0) == T0 - timedelta(minutes=1)


def test_coverage_gate() -> None:
    assert has_coverage(9, 10)
    assert not has_coverage(8, 10)
    assert not has_coverage(3, 10)
    assert has_coverage(1, 1)


def test_aggregate_means_the_window() -> None:
    result = aggregate(_rule(), _series("cpu", [70, 75, 85, 88, 90]), T0)

    assert result.count == 5
    assert round(result.value, 2) == 81.6
    assert result.descriptor == "CPU"


def test_aggregate_ignores_snapshots_before_window() -> None:
    snaps = _series("cpu", [100, 100, 10, 10, 10, 10, 10])

    result = aggregate(_rule(), snaps, T0)

    assert result.count == 5
    assert result.value == 10.0


def test_aggregate_skips_snapshots_without_the_metric() -> None:
    snaps = _series("cpu", [50, 50, 50]) + [snapshot_at(T0, mem_pct=10.0)]

    result = aggregate(_rule(), snaps, T0)

    assert result.count == 3
    assert aggregate(_rule(name="Swap"), snaps, T0) is None


def test_legacy_disk_uses_highest_filesystem_mean() -> None:
    snaps = [
        snapshot_at(
            T0 - timedelta(minutes=i),
            disk_pct=50.0,
            extra_fs={"data": FsStats(disk_used=96.0 + 8 * i, disk_total=128.0)},
        )
        for i in range(3)
    ]

    result = aggregate(_rule(name="Disk", minutes=3), snaps, T0)

    assert result.value == pytest.approx(81.25)
    assert result.descriptor == "Usage of data"
    assert result.means == pytest.approx({"root": 50.0, "data": 81.25})
