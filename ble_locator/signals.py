from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

from .models import SignalMeasurement


class SignalSnapshot:
    """
    一个测量周期内的信号集合：beacon_id -> 最新 RSSI

    同一信标重复上报时后值覆盖前值。时间戳仅供参考，算法不使用。
    """

    def __init__(self):
        self._rssi: Dict[str, int] = {}
        self._timestamps: Dict[str, Optional[datetime]] = {}

    # ---- Constructors ----
    @classmethod
    def from_measurements(cls, measurements: Iterable[SignalMeasurement]) -> "SignalSnapshot":
        snapshot = cls()
        for m in measurements:
            snapshot.add_measurement(m)
        return snapshot

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, int]]) -> "SignalSnapshot":
        snapshot = cls()
        snapshot.add_multiple(pairs)
        return snapshot

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, int]) -> "SignalSnapshot":
        return cls.from_pairs(mapping.items())

    # ---- Mutation ----
    def add(self, beacon_id: str, rssi: int, timestamp: Optional[datetime] = None) -> None:
        self._rssi[beacon_id] = int(rssi)
        self._timestamps[beacon_id] = timestamp

    def add_measurement(self, measurement: SignalMeasurement) -> None:
        self.add(measurement.beacon_id, measurement.rssi, measurement.timestamp)

    def add_multiple(self, pairs: Iterable[Tuple[str, int]]) -> None:
        for beacon_id, rssi in pairs:
            self.add(beacon_id, rssi)

    def drop_older_than(self, cutoff: datetime) -> int:
        """移除时间戳早于 cutoff 的读数，无时间戳的读数保留；返回移除数量"""
        stale = [
            beacon_id
            for beacon_id, ts in self._timestamps.items()
            if ts is not None and ts < cutoff
        ]
        for beacon_id in stale:
            del self._rssi[beacon_id]
            del self._timestamps[beacon_id]
        return len(stale)

    def clear(self) -> None:
        self._rssi.clear()
        self._timestamps.clear()

    def copy(self) -> "SignalSnapshot":
        snapshot = SignalSnapshot()
        snapshot._rssi = dict(self._rssi)
        snapshot._timestamps = dict(self._timestamps)
        return snapshot

    # ---- Accessors ----
    def get(self, beacon_id: str) -> Optional[int]:
        return self._rssi.get(beacon_id)

    def timestamp(self, beacon_id: str) -> Optional[datetime]:
        return self._timestamps.get(beacon_id)

    def contains(self, beacon_id: str) -> bool:
        return beacon_id in self._rssi

    def all(self) -> Dict[str, int]:
        return dict(self._rssi)

    @property
    def count(self) -> int:
        return len(self._rssi)

    def __contains__(self, beacon_id: object) -> bool:
        return beacon_id in self._rssi

    def __len__(self) -> int:
        return len(self._rssi)

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        return iter(self._rssi.items())

    def __repr__(self) -> str:
        return f"SignalSnapshot({self._rssi!r})"
