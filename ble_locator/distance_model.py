from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np

from .models import DistanceUnit


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistanceModel:
    """
    RSSI <-> 距离 对数路径损耗模型

    公式: RSSI(d) = a + b * log10(d)，d 以米计；
    对外输入输出的距离均使用 unit 指定的单位。
    各预设只是 a/b/n 的不同取法，换算公式唯一。
    """

    a: float
    b: float
    n: float = 0.0
    unit: DistanceUnit = DistanceUnit.CENTIMETER
    model_type: str = "log_distance"

    # ---------- Presets ----------
    @classmethod
    def log_distance(cls, a: float, b: float, unit: DistanceUnit = DistanceUnit.CENTIMETER):
        return cls(a=a, b=b, n=0.0, unit=unit, model_type="log_distance")

    @classmethod
    def free_space(cls, a: float, unit: DistanceUnit = DistanceUnit.CENTIMETER):
        return cls(a=a, b=-20.0, n=2.0, unit=unit, model_type="free_space")

    @classmethod
    def log_normal_shadow(
        cls, a: float, n: float, unit: DistanceUnit = DistanceUnit.CENTIMETER
    ):
        return cls(a=a, b=-10.0 * n, n=n, unit=unit, model_type="log_normal_shadow")

    @classmethod
    def custom(
        cls,
        a: float,
        b: float,
        n: float,
        model_type: str = "custom",
        unit: DistanceUnit = DistanceUnit.CENTIMETER,
    ):
        return cls(a=a, b=b, n=n, unit=unit, model_type=model_type)

    @classmethod
    def fitted(cls, a: float, b: float, n: float, unit: DistanceUnit = DistanceUnit.CENTIMETER):
        """外部拟合得到的参数，例如 A=-49.656, B=-43.284, n=4.328"""
        return cls(a=a, b=b, n=n, unit=unit, model_type="fitted")

    @classmethod
    def fit(
        cls,
        distances: Sequence[float],
        rssis: Sequence[float],
        unit: DistanceUnit = DistanceUnit.CENTIMETER,
    ) -> "DistanceModel":
        """
        由标定样本做最小二乘拟合 rssi = a + b*log10(d_m)
        distances 使用 unit 单位
        """
        if len(distances) != len(rssis):
            raise ValueError("距离与 RSSI 样本数量不一致")
        if len(distances) < 2:
            raise ValueError("拟合至少需要 2 个样本")
        if any(d <= 0 for d in distances):
            raise ValueError("标定距离必须为正数")

        xs = np.log10([unit.to_meters(float(d)) for d in distances])
        ys = np.asarray(rssis, dtype=float)
        b, a = np.polyfit(xs, ys, 1)
        model = cls(a=float(a), b=float(b), n=float(-b / 10.0), unit=unit, model_type="fitted")
        logger.info("拟合完成: %s, 样本数: %d", model.description(), len(xs))
        return model

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DistanceModel":
        return cls(
            a=float(config["a"]),
            b=float(config["b"]),
            n=float(config.get("n", 0.0)),
            unit=DistanceUnit(config.get("unit", DistanceUnit.CENTIMETER.value)),
            model_type=str(config.get("model_type", "log_distance")),
        )

    # ---------- Conversions ----------
    def distance_from_rssi(self, rssi: float) -> float:
        """反解对数距离模型: d = 10^((RSSI - A) / B)，返回 unit 单位的距离"""
        if self.b == 0:
            raise ValueError("斜率 B 不能为 0")
        exponent = (float(rssi) - self.a) / self.b
        try:
            meters = math.pow(10, exponent)
        except OverflowError:
            return math.inf
        return self.unit.from_meters(meters)

    def rssi_from_distance(self, distance: float) -> float:
        """根据距离计算 RSSI；非正距离返回 -inf"""
        meters = self.unit.to_meters(distance)
        if meters <= 0.0:
            return -math.inf
        return self.a + self.b * math.log10(meters)

    def convert(self, distance: float, target_unit: DistanceUnit) -> float:
        """将本模型单位下的距离换算为目标单位"""
        return max(self.unit.convert(distance, target_unit), 0.0)

    # ---------- Validation ----------
    def validate(self) -> Optional[str]:
        """返回 None 表示参数合理，否则返回原因；不阻止使用"""
        if self.b >= 0.0:
            return "斜率 B 应为负数（RSSI 随距离增加而减小）"
        if self.a > 0.0:
            return "截距 A 应为负数（参考功率以 dBm 表示）"
        return None

    @property
    def is_valid(self) -> bool:
        return self.validate() is None

    def description(self) -> str:
        return (
            f"RSSI模型 [{self.model_type}] - A={self.a:.2f} dBm, B={self.b:.2f}, "
            f"n={self.n:.2f}, 单位: {self.unit.value}"
        )

    def __str__(self) -> str:
        return self.description()
