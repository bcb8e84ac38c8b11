"""Metric snapshot dataclasses and stored payload decoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..errors import SnapshotDecodeError

ROOT_FS = "root"


@dataclass(frozen=True)
class FsStats:
    disk_used: float
    disk_total: float

    @property
    def used_pct(self) -> float | None:
        if not self.disk_total:
            return None
        return self.disk_used / self.disk_total * 100


@dataclass(frozen=True)
class MetricSnapshot:
    """One host's stats at one collection interval. Absent readings are None."""

    system: str
    created: datetime
    cpu: float | None = None
    mem_pct: float | None = None
    disk_pct: float | None = None
    disk_used: float | None = None
    disk_total: float | None = None
    net_sent: float | None = None
    net_recv: float | None = None
    temperatures: dict[str, float] = field(default_factory=dict)
    load_avg: tuple[float, float, float] | None = None
    swap_pct: float | None = None
    swap_used: float | None = None
    extra_fs: dict[str, FsStats] = field(default_factory=dict)

    def root_disk_pct(self) -> float | None:
        if self.disk_pct is not None:
            return self.disk_pct
        if self.disk_used is not None and self.disk_total:
            return self.disk_used / self.disk_total * 100
        return None

    def filesystem_pct(self, name: str) -> float | None:
        if name == ROOT_FS:
            return self.root_disk_pct()
        fs = self.extra_fs.get(name)
        return fs.used_pct if fs else None

    def all_filesystem_pcts(self) -> dict[str, float]:
        out: dict[str, float] = {}
        root = self.root_disk_pct()
        if root is not None:
            out[ROOT_FS] = root
        for name, fs in self.extra_fs.items():
            pct = fs.used_pct
            if pct is not None:
                out[name] = pct
        return out

    @classmethod
    def from_payload(
        cls, system: str, created: datetime, payload: dict
    ) -> "MetricSnapshot":
        """Decode the compact stored stats payload.

        Keys: cpu, mp (mem %), dp (disk %), du/dt (disk used/total GB),
        ns/nr (net MB/s), t (temps), la (load averages), sp/su (swap % / GB),
        efs (extra filesystems as {"name": {"du": .., "dt": ..}}).
        """
        if not isinstance(payload, dict):
            raise SnapshotDecodeError(
                f"stats payload must be an object, got {type(payload).__name__}"
            )
        try:
            temps = {str(k): float(v) for k, v in (payload.get("t") or {}).items()}
            load_raw = payload.get("la")
            load_avg = None
            if load_raw is not None:
                if len(load_raw) != 3:
                    raise SnapshotDecodeError("load average must have 3 values")
                load_avg = (
                    float(load_raw[0]),
                    float(load_raw[1]),
                    float(load_raw[2]),
                )
            extra_fs = {
                str(name): FsStats(
                    float(fs.get("du") or 0.0), float(fs.get("dt") or 0.0)
                )
                for name, fs in (payload.get("efs") or {}).items()
            }
            return cls(
                system=system,
                created=created,
                cpu=_opt_float(payload.get("cpu")),
                mem_pct=_opt_float(payload.get("mp")),
                disk_pct=_opt_float(payload.get("dp")),
                disk_used=_opt_float(payload.get("du")),
                disk_total=_opt_float(payload.get("dt")),
                net_sent=_opt_float(payload.get("ns")),
                net_recv=_opt_float(payload.get("nr")),
                temperatures=temps,
                load_avg=load_avg,
                swap_pct=_opt_float(payload.get("sp")),
                swap_used=_opt_float(payload.get("su")),
                extra_fs=extra_fs,
            )
        except SnapshotDecodeError:
            raise
        except (TypeError, ValueError, AttributeError) as exc:
            raise SnapshotDecodeError(f"malformed stats payload: {exc}") from exc

    def to_payload(self) -> dict:
        """Encode back to the compact stored form (absent readings omitted)."""
        scalars = {
            "cpu": self.cpu,
            "mp": self.mem_pct,
            "dp": self.disk_pct,
            "du": self.disk_used,
            "dt": self.disk_total,
            "ns": self.net_sent,
            "nr": self.net_recv,
            "sp": self.swap_pct,
            "su": self.swap_used,
        }
        payload: dict = {k: v for k, v in scalars.items() if v is not None}
        if self.temperatures:
            payload["t"] = dict(self.temperatures)
        if self.load_avg is not None:
            payload["la"] = list(self.load_avg)
        if self.extra_fs:
            payload["efs"] = {
                name: {"du": fs.disk_used, "dt": fs.disk_total}
                for name, fs in self.extra_fs.items()
            }
        return payload


def _opt_float(value: object) -> float | None:
    if value is None:
        return None
    return float(value)
