"""Metric kinds and per-snapshot value extraction.

Every supported alert name maps to a ``MetricDef`` in ``METRIC_DEFS``. A
definition knows how to pull keyed samples out of one snapshot; extraction
and window aggregation are both built on those samples.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .models.snapshot import MetricSnapshot

logger = logging.getLogger(__name__)

# Key used for metrics that have a single reading per snapshot.
SINGLE = ""


class MetricKind(str, Enum):
    CPU = "CPU"
    MEMORY = "Memory"
    DISK = "Disk"
    BANDWIDTH = "Bandwidth"
    BANDWIDTH_UP = "BandwidthUp"
    BANDWIDTH_DOWN = "BandwidthDown"
    TEMPERATURE = "Temperature"
    LOAD_AVG_1 = "LoadAvg1"
    LOAD_AVG_5 = "LoadAvg5"
    LOAD_AVG_15 = "LoadAvg15"
    SWAP = "Swap"
    STATUS = "Status"


Sampler = Callable[[MetricSnapshot, str], "dict[str, float] | None"]


@dataclass(frozen=True)
class MetricDef:
    kind: MetricKind
    label: str
    unit: str
    sampler: Sampler | None
    descriptor: str | None = None  # format for keyed readings, e.g. "Usage of {}"

    @property
    def title_label(self) -> str:
        return self.label if self.kind is MetricKind.CPU else self.label.lower()

    def describe(self, key: str) -> str:
        if self.descriptor and key:
            return self.descriptor.format(key)
        return self.label


@dataclass(frozen=True)
class Extraction:
    value: float
    unit: str
    descriptor: str


def _single(reading: Callable[[MetricSnapshot], float | None]) -> Sampler:
    def _sample(snapshot: MetricSnapshot, filesystem: str) -> dict[str, float] | None:
        value = reading(snapshot)
        return None if value is None else {SINGLE: float(value)}

    return _sample


def _mbps(*values: float | None) -> float | None:
    if any(v is None for v in values):
        return None
    return sum(values) * 8  # MB/s to Mbps


def _load(index: int) -> Callable[[MetricSnapshot], float | None]:
    def _read(snapshot: MetricSnapshot) -> float | None:
        return snapshot.load_avg[index] if snapshot.load_avg else None

    return _read


def _disk_samples(snapshot: MetricSnapshot, filesystem: str) -> dict[str, float] | None:
    if filesystem:
        pct = snapshot.filesystem_pct(filesystem)
        return None if pct is None else {filesystem: pct}
    # Legacy rules without a filesystem watch every filesystem.
    return snapshot.all_filesystem_pcts() or None


def _temperature_samples(
    snapshot: MetricSnapshot, filesystem: str
) -> dict[str, float] | None:
    return dict(snapshot.temperatures) or None


def _swap_samples(snapshot: MetricSnapshot, filesystem: str) -> dict[str, float] | None:
    if snapshot.swap_pct is None:
        return None
    if snapshot.swap_pct == 0 and not snapshot.swap_used:
        return None  # swap not configured
    return {SINGLE: snapshot.swap_pct}


def _build_defs() -> dict[MetricKind, MetricDef]:
    defs = [
        MetricDef(MetricKind.CPU, "CPU", "%", _single(lambda s: s.cpu)),
        MetricDef(MetricKind.MEMORY, "Memory", "%", _single(lambda s: s.mem_pct)),
        MetricDef(
            MetricKind.DISK, "Disk usage", "%", _disk_samples, "Usage of {}"
        ),
        MetricDef(
            MetricKind.BANDWIDTH,
            "Bandwidth",
            " Mbps",
            _single(lambda s: _mbps(s.net_sent, s.net_recv)),
        ),
        MetricDef(
            MetricKind.BANDWIDTH_UP,
            "Upload bandwidth",
            " Mbps",
            _single(lambda s: _mbps(s.net_sent)),
        ),
        MetricDef(
            MetricKind.BANDWIDTH_DOWN,
            "Download bandwidth",
            " Mbps",
            _single(lambda s: _mbps(s.net_recv)),
        ),
        MetricDef(
            MetricKind.TEMPERATURE,
            "Temperature",
            "°C",
            _temperature_samples,
            "Highest sensor {}",
        ),
        MetricDef(MetricKind.LOAD_AVG_1, "1m Load", "", _single(_load(0))),
        MetricDef(MetricKind.LOAD_AVG_5, "5m Load", "", _single(_load(1))),
        MetricDef(MetricKind.LOAD_AVG_15, "15m Load", "", _single(_load(2))),
        MetricDef(MetricKind.SWAP, "Swap", "%", _swap_samples),
        MetricDef(MetricKind.STATUS, "Status", "", None),
    ]
    return {d.kind: d for d in defs}


METRIC_DEFS: dict[MetricKind, MetricDef] = _build_defs()


def parse_kind(name: str) -> MetricKind | None:
    try:
        return MetricKind(name)
    except ValueError:
        pass
    lowered = (name or "").strip().lower()
    for kind in MetricKind:
        if kind.value.lower() == lowered:
            return kind
    return None


def get_metric_def(name: str | MetricKind) -> MetricDef | None:
    kind = name if isinstance(name, MetricKind) else parse_kind(name)
    return METRIC_DEFS.get(kind) if kind else None


def samples(
    definition: MetricDef, snapshot: MetricSnapshot, filesystem: str = ""
) -> dict[str, float] | None:
    if definition.sampler is None:
        return None
    return definition.sampler(snapshot, filesystem or "")


def extract(
    name: str | MetricKind, snapshot: MetricSnapshot, filesystem: str = ""
) -> Extraction | None:
    """Instantaneous value for an alert, or None when it must be skipped."""
    definition = get_metric_def(name)
    if definition is None:
        logger.debug("No metric definition for %s", name)
        return None
    readings = samples(definition, snapshot, filesystem)
    if not readings:
        return None
    key, value = max(readings.items(), key=lambda item: item[1])
    return Extraction(
        value=value, unit=definition.unit, descriptor=definition.describe(key)
    )
