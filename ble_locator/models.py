from __future__ import annotations

import math
from dataclasses import dataclass, asdict, field, replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DistanceUnit(Enum):
    MILLIMETER = "mm"
    CENTIMETER = "cm"
    METER = "m"

    @property
    def meters(self) -> float:
        """一个单位对应的米数"""
        return _UNIT_IN_METERS[self]

    def to_meters(self, value: float) -> float:
        return value * self.meters

    def from_meters(self, value: float) -> float:
        return value / self.meters

    def convert(self, value: float, target: "DistanceUnit") -> float:
        """以米为中间单位做线性换算"""
        if target is self:
            return value
        return target.from_meters(self.to_meters(value))


_UNIT_IN_METERS = {
    DistanceUnit.MILLIMETER: 0.001,
    DistanceUnit.CENTIMETER: 0.01,
    DistanceUnit.METER: 1.0,
}


def confidence_scale(unit: DistanceUnit) -> float:
    """置信度换算基准：100 厘米折算到给定单位"""
    return DistanceUnit.CENTIMETER.convert(100.0, unit)


@dataclass(frozen=True)
class Anchor:
    """已知位置的固定信标"""

    id: str
    name: str
    x: float
    y: float
    z: float = 0.0

    @classmethod
    def from_tuple(cls, values: Tuple[str, str, float, float, float]) -> "Anchor":
        anchor_id, name, x, y, z = values
        return cls(id=anchor_id, name=name, x=float(x), y=float(y), z=float(z))

    @property
    def coordinates(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def distance_to(self, other: "Anchor") -> float:
        """与另一信标的欧几里得距离"""
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )


@dataclass(frozen=True)
class SignalMeasurement:
    """扫描端上报的一次信号读数"""

    beacon_id: str
    rssi: int
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class RangeMeasurement:
    """信标坐标 + 估算距离，三边定位的输入"""

    x: float
    y: float
    z: float
    distance: float
    rssi: Optional[int] = None
    beacon_id: Optional[str] = None


class LocationMethod(Enum):
    TRILATERATION_BASIC = "trilateration_basic"
    TRILATERATION_WEIGHTED = "trilateration_weighted"
    TRILATERATION_LEAST_SQUARES = "trilateration_least_squares"
    FUSED = "fused"
    AVERAGE = "average"


@dataclass(frozen=True)
class LocationResult:
    """
    位置计算结果

    confidence 在构造时被限制在 [0, 1]；error 与坐标同单位。
    beacon_count 为 0 表示聚合结果（平均值），而非单次定位。
    """

    x: float
    y: float
    z: float
    confidence: float
    error: float
    method: str
    beacon_count: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        # NaN 原样透传，由调用方处理
        if not math.isnan(self.confidence):
            object.__setattr__(self, "confidence", max(0.0, min(1.0, self.confidence)))

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @property
    def xyz(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def distance_to(self, other: "LocationResult") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def distance_2d_to(self, other: "LocationResult") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def quality_score(self, unit: DistanceUnit = DistanceUnit.CENTIMETER) -> float:
        """质量评分（置信度与误差因子的平均）"""
        error_factor = 1.0 / (1.0 + self.error / confidence_scale(unit))
        return (self.confidence + error_factor) / 2.0

    def is_high_quality(self, unit: DistanceUnit = DistanceUnit.CENTIMETER) -> bool:
        return self.confidence > 0.7 and self.error < confidence_scale(unit)

    def with_position(self, x: float, y: float, z: float) -> "LocationResult":
        """返回替换坐标后的新结果，其余字段保持不变"""
        return replace(self, x=x, y=y, z=z)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return {k: v for k, v in d.items() if v is not None}

    def describe(self) -> str:
        return (
            f"位置: ({self.x:.2f}, {self.y:.2f}, {self.z:.2f}), "
            f"置信度: {self.confidence * 100:.1f}%, 误差: {self.error:.2f}, "
            f"方法: {self.method}, 信标数: {self.beacon_count}"
        )

    def __str__(self) -> str:
        return f"({self.x:.2f}, {self.y:.2f}, {self.z:.2f}) [{self.confidence * 100:.1f}%]"
