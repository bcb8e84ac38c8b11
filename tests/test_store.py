from datetime import timedelta

import pytest
from conftest import SYSTEM_ID, T0, USER, add_rule, snapshot_at

from fleet_alerts.errors import SnapshotDecodeError, StoreError
from fleet_alerts.models.alerts import AlertHistoryEntry, AlertRule
from fleet_alerts.models.settings import QUIET_DAILY, QuietHoursWindow
from fleet_alerts.store import MemoryStore


def test_duplicate_rule_key_is_rejected(store) -> None:
    add_rule(store, name="CPU")

    with pytest.raises(StoreError):
        store.save_rule(AlertRule(user=USER, system=SYSTEM_ID, name="CPU"))


def test_find_rules_returns_copies(store) -> None:
    rule = add_rule(store, name="CPU")

    [found] = store.find_rules(system=SYSTEM_ID)
    found.triggered = True

    assert store.get_rule(rule.id).triggered is False


def test_transaction_rolls_back_rules_and_history(store) -> None:
    rule = add_rule(store, name="CPU")

    with pytest.raises(RuntimeError):
        with store.transaction():
            updated = rule.copy()
            updated.triggered = True
            store.save_rule(updated)
            store.create_history(
                AlertHistoryEntry(
                    alert_id=rule.id,
                    user=USER,
                    system=SYSTEM_ID,
                    name="CPU",
                    value=1.0,
                    created=T0,
                )
            )
            raise RuntimeError("boom")

    assert store.get_rule(rule.id).triggered is False
    assert store.list_history() == []


def test_snapshots_between_is_half_open(store) -> None:
    for minute in range(5):
        store.add_snapshot(snapshot_at(T0 + timedelta(minutes=minute), cpu=minute))

    found = store.snapshots_between(
        SYSTEM_ID, T0 + timedelta(minutes=1), T0 + timedelta(minutes=3)
    )

    assert [s.cpu for s in found] == [2, 3]


def test_snapshots_are_kept_in_order(store) -> None:
    store.add_snapshot(snapshot_at(T0 + timedelta(minutes=2), cpu=2))
    store.add_snapshot(snapshot_at(T0, cpu=0))
    store.add_snapshot(snapshot_at(T0 + timedelta(minutes=1), cpu=1))

    found = store.snapshots_between(
        SYSTEM_ID, T0 - timedelta(minutes=1), T0 + timedelta(hours=1)
    )

    assert [s.cpu for s in found] == [0, 1, 2]


def test_quiet_hours_lookup_includes_global_windows(store) -> None:
    store.add_quiet_hours(
        QuietHoursWindow(user=USER, start=T0, end=T0, type=QUIET_DAILY)
    )
    store.add_quiet_hours(
        QuietHoursWindow(user=USER, start=T0, end=T0, system="sys2")
    )

    assert len(store.find_quiet_hours(USER, SYSTEM_ID)) == 1
    assert len(store.find_quiet_hours(USER, "sys2")) == 2
    assert store.find_quiet_hours("u2", SYSTEM_ID) == []


def test_state_survives_restart(tmp_path) -> None:
    path = tmp_path / "state.json"
    first = MemoryStore(path)
    rule = AlertRule(user=USER, system=SYSTEM_ID, name="CPU", value=75, last_sent=T0)
    first.save_rule(rule)

    second = MemoryStore(path)
    second.load_state()

    restored = second.get_rule(rule.id)
    assert restored == rule


def test_raw_stats_records_decode_on_read(store) -> None:
    payload = {"cpu": 12, "efs": {"data": {"du": 1, "dt": 4}}}
    store.add_stats_record(SYSTEM_ID, T0, payload)

    [snap] = store.snapshots_between(SYSTEM_ID, T0 - timedelta(minutes=1), T0)

    assert snap.cpu == 12.0
    assert snap.filesystem_pct("data") == 25.0


def test_malformed_stats_record_raises_decode_error(store) -> None:
    store.add_stats_record(SYSTEM_ID, T0, {"cpu": "n/a"})

    with pytest.raises(SnapshotDecodeError):
        store.snapshots_between(SYSTEM_ID, T0 - timedelta(minutes=1), T0)
    assert store.snapshots_between(SYSTEM_ID, T0, T0 + timedelta(minutes=1)) == []
