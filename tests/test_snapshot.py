import pytest
from conftest import T0

from fleet_alerts.errors import SnapshotDecodeError
from fleet_alerts.models.snapshot import MetricSnapshot


def test_from_payload_decodes_compact_keys() -> None:
    payload = {
        "cpu": 12.5,
        "mp": 40,
        "dp": 55.5,
        "ns": 0.25,
        "nr": 1.0,
        "t": {"cpu": 50},
        "la": [0.5, 0.75, 1.0],
        "sp": 3.0,
        "su": 0.2,
        "efs": {"data": {"du": 20, "dt": 80}},
    }

    snap = MetricSnapshot.from_payload("sys1", T0, payload)

    assert snap.cpu == 12.5
    assert snap.mem_pct == 40.0
    assert snap.temperatures == {"cpu": 50.0}
    assert snap.load_avg == (0.5, 0.75, 1.0)
    assert snap.filesystem_pct("data") == 25.0
    assert snap.all_filesystem_pcts() == {"root": 55.5, "data": 25.0}


def test_from_payload_leaves_absent_fields_none() -> None:
    snap = MetricSnapshot.from_payload("sys1", T0, {"cpu": 1})

    assert snap.mem_pct is None
    assert snap.load_avg is None
    assert snap.root_disk_pct() is None


def test_root_disk_falls_back_to_used_total() -> None:
    snap = MetricSnapshot.from_payload("sys1", T0, {"du": 30, "dt": 120})

    assert snap.root_disk_pct() == 25.0


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "dict"],
        {"cpu": "high"},
        {"la": [1.0, 2.0]},
        {"t": ["cpu", 50]},
    ],
)
def test_from_payload_rejects_malformed(payload) -> None:
    with pytest.raises(SnapshotDecodeError):
        MetricSnapshot.from_payload("sys1", T0, payload)
