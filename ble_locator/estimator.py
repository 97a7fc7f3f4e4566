from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .anchor_registry import AnchorRegistry
from .distance_model import DistanceModel
from .models import (
    DistanceUnit,
    LocationMethod,
    LocationResult,
    RangeMeasurement,
    confidence_scale,
)
from .signals import SignalSnapshot


logger = logging.getLogger(__name__)

# |det| 低于该值视为信标近似共线，无法在平面内求解
DETERMINANT_EPSILON = 1e-10

WeightPolicy = Callable[[RangeMeasurement], float]


class Algorithm(Enum):
    EXACT = "exact"
    WEIGHTED = "weighted"
    LEAST_SQUARES = "least_squares"


# ---------- Weight policies ----------
def rssi_strength_weight(m: RangeMeasurement) -> float:
    """信号越强（|RSSI| 越小）权重越大；无 RSSI 时权重为 1"""
    if m.rssi is None:
        return 1.0
    return 1.0 / (abs(m.rssi) / 100.0 + 0.1)


def inverse_square_distance_weight(near: float = 50.0, scale: float = 10000.0) -> WeightPolicy:
    """
    距离越近权重越大：near 以内权重为 1，之外按 scale / d^2 衰减
    默认值按厘米设定，其他单位需相应调整
    """

    def policy(m: RangeMeasurement) -> float:
        if m.distance < near:
            return 1.0
        return scale / (m.distance * m.distance)

    return policy


def unit_scaled_inverse_square_weight(unit: DistanceUnit) -> WeightPolicy:
    """按距离单位缩放 near / scale 的距离权重（默认值为厘米下的 50 / 10000）"""
    factor = confidence_scale(unit) / 100.0
    return inverse_square_distance_weight(near=50.0 * factor, scale=10000.0 * factor * factor)


WEIGHT_POLICIES: Dict[str, Callable[[DistanceUnit], WeightPolicy]] = {
    "rssi_strength": lambda unit: rssi_strength_weight,
    "inverse_square_distance": unit_scaled_inverse_square_weight,
}


# ---------- Helpers ----------
def residual_error(measurements: Sequence[RangeMeasurement], x: float, y: float) -> float:
    """各信标测量距离与 (x, y) 平面距离之差的均方根"""
    if not measurements:
        return 0.0
    pts = np.array([[m.x, m.y] for m in measurements], dtype=float)
    ds = np.array([m.distance for m in measurements], dtype=float)
    computed = np.hypot(pts[:, 0] - x, pts[:, 1] - y)
    return float(np.sqrt(np.mean((computed - ds) ** 2)))


def confidence_from_error(error: float, unit: DistanceUnit = DistanceUnit.CENTIMETER) -> float:
    # 距离溢出为 inf 时误差不再有限，置信度记为 0
    if not np.isfinite(error):
        return 0.0
    return min(max(1.0 / (1.0 + error / confidence_scale(unit)), 0.0), 1.0)


def _build_result(
    measurements: Sequence[RangeMeasurement],
    x: float,
    y: float,
    z: float,
    method: LocationMethod,
    unit: DistanceUnit,
) -> LocationResult:
    error = residual_error(measurements, x, y)
    return LocationResult(
        x=float(x),
        y=float(y),
        z=float(z),
        confidence=confidence_from_error(error, unit),
        error=error,
        method=method.value,
        beacon_count=len(measurements),
    )


def _solve_linear(
    first3: Sequence[RangeMeasurement], w2: float = 1.0, w3: float = 1.0
) -> Optional[Tuple[float, float]]:
    """圆方程两两相减消去二次项，克莱姆法则求解 2x2 线性方程组"""
    m1, m2, m3 = first3
    a11 = 2.0 * (m2.x - m1.x) * w2
    a12 = 2.0 * (m2.y - m1.y) * w2
    a21 = 2.0 * (m3.x - m1.x) * w3
    a22 = 2.0 * (m3.y - m1.y) * w3

    r1, r2, r3 = m1.distance, m2.distance, m3.distance
    b1 = (r1 * r1 - r2 * r2 - m1.x * m1.x + m2.x * m2.x - m1.y * m1.y + m2.y * m2.y) * w2
    b2 = (r1 * r1 - r3 * r3 - m1.x * m1.x + m3.x * m3.x - m1.y * m1.y + m3.y * m3.y) * w3

    det = a11 * a22 - a12 * a21
    if abs(det) < DETERMINANT_EPSILON:
        logger.debug("行列式过小 (%.3e)，信标近似共线", det)
        return None

    x = (b1 * a22 - b2 * a12) / det
    y = (a11 * b2 - a21 * b1) / det
    return x, y


# ---------- Solvers ----------
def solve_exact(
    measurements: Sequence[RangeMeasurement],
    unit: DistanceUnit = DistanceUnit.CENTIMETER,
) -> Optional[LocationResult]:
    """
    基础三边定位：仅使用前 3 个测量
    z 取三个信标高度的平均值（不做几何求解）
    """
    if len(measurements) < 3:
        return None
    first3 = list(measurements[:3])
    solved = _solve_linear(first3)
    if solved is None:
        return None
    x, y = solved
    z = sum(m.z for m in first3) / 3.0
    return _build_result(first3, x, y, z, LocationMethod.TRILATERATION_BASIC, unit)


def solve_weighted(
    measurements: Sequence[RangeMeasurement],
    weight_policy: WeightPolicy = rssi_strength_weight,
    unit: DistanceUnit = DistanceUnit.CENTIMETER,
) -> Optional[LocationResult]:
    """加权三边定位：与基础版代数一致，方程按测量权重缩放"""
    if len(measurements) < 3:
        return None
    first3 = list(measurements[:3])
    w1, w2, w3 = (float(weight_policy(m)) for m in first3)

    solved = _solve_linear(first3, w2, w3)
    if solved is None:
        return None
    x, y = solved

    total_weight = w1 + w2 + w3
    if total_weight > 0:
        z = (first3[0].z * w1 + first3[1].z * w2 + first3[2].z * w3) / total_weight
    else:
        z = sum(m.z for m in first3) / 3.0
    return _build_result(first3, x, y, z, LocationMethod.TRILATERATION_WEIGHTED, unit)


def solve_least_squares(
    measurements: Sequence[RangeMeasurement],
    iterations: int = 5,
    step_size: float = 0.05,
    tolerance: Optional[float] = None,
    unit: DistanceUnit = DistanceUnit.CENTIMETER,
) -> Optional[LocationResult]:
    """
    多信标近似最小二乘定位，使用全部测量

    以基础三边定位结果为初值（失败时取信标质心），再做固定次数的
    加权梯度修正。没有收敛保证，是近似解而非精确极小值；
    给定 tolerance 时，单步修正量小于它即提前停止。
    """
    if len(measurements) < 3:
        return None

    pts = np.array([[m.x, m.y] for m in measurements], dtype=float)
    ds = np.array([m.distance for m in measurements], dtype=float)

    seed = solve_exact(measurements, unit)
    if seed is not None:
        pos = np.array([seed.x, seed.y], dtype=float)
    else:
        pos = pts.mean(axis=0)
        logger.debug("基础三边定位失败，以质心 (%.2f, %.2f) 为初值", pos[0], pos[1])

    for i in range(iterations):
        diff = pos - pts
        dist = np.hypot(diff[:, 0], diff[:, 1])
        residual = dist - ds

        positive = ds > 0
        ratio = np.full_like(ds, np.inf)
        ratio[positive] = np.abs(residual[positive]) / ds[positive]
        w = 1.0 / (1.0 + np.maximum(ratio, 0.1))

        away = dist > 1e-6
        direction = np.zeros_like(diff)
        direction[away] = diff[away] / dist[away][:, None]

        sum_w = float(w.sum())
        if sum_w < 1e-10:
            break

        step = step_size * (w @ direction) * float(w @ residual) / sum_w
        pos = pos - step
        if tolerance is not None and float(np.linalg.norm(step)) < tolerance:
            logger.debug("第 %d 次迭代后收敛", i + 1)
            break

    z = sum(m.z for m in measurements) / len(measurements)
    return _build_result(
        measurements, pos[0], pos[1], z, LocationMethod.TRILATERATION_LEAST_SQUARES, unit
    )


# ---------- Fusion ----------
def fuse_results(results: Sequence[Tuple[LocationResult, float]]) -> Optional[LocationResult]:
    """对多个定位结果按权重做加权平均；beacon_count 取最大值"""
    if not results:
        return None

    total_weight = sum(w for _, w in results)
    if total_weight == 0:
        logger.warning("融合权重之和为 0，放弃融合")
        return None

    def weighted(attr: str) -> float:
        return sum(getattr(r, attr) * w for r, w in results) / total_weight

    return LocationResult(
        x=weighted("x"),
        y=weighted("y"),
        z=weighted("z"),
        confidence=weighted("confidence"),
        error=weighted("error"),
        method=LocationMethod.FUSED.value,
        beacon_count=max(r.beacon_count for r, _ in results),
    )


class Estimator:
    """基于 RSSI 的信标定位算法集合"""

    def __init__(
        self,
        model: DistanceModel,
        weight_policy: WeightPolicy = rssi_strength_weight,
        iterations: int = 5,
        step_size: float = 0.05,
        tolerance: Optional[float] = None,
    ):
        self.model = model
        self.weight_policy = weight_policy
        self.iterations = iterations
        self.step_size = step_size
        self.tolerance = tolerance

    @classmethod
    def from_config(cls, model: DistanceModel, config: Mapping[str, Any]) -> "Estimator":
        policy_name = config.get("weight_policy", "rssi_strength")
        if policy_name not in WEIGHT_POLICIES:
            raise ValueError(f"未知的权重策略: {policy_name}")
        tolerance = config.get("tolerance")
        return cls(
            model,
            weight_policy=WEIGHT_POLICIES[policy_name](model.unit),
            iterations=int(config.get("iterations", 5)),
            step_size=float(config.get("step_size", 0.05)),
            tolerance=float(tolerance) if tolerance is not None else None,
        )

    def measurements(
        self, registry: AnchorRegistry, snapshot: SignalSnapshot
    ) -> List[RangeMeasurement]:
        return registry.measurements(snapshot, self.model)

    def solve(
        self, measurements: Sequence[RangeMeasurement], algorithm: Algorithm
    ) -> Optional[LocationResult]:
        unit = self.model.unit
        match algorithm:
            case Algorithm.EXACT:
                return solve_exact(measurements, unit)
            case Algorithm.WEIGHTED:
                return solve_weighted(measurements, self.weight_policy, unit)
            case Algorithm.LEAST_SQUARES:
                return solve_least_squares(
                    measurements, self.iterations, self.step_size, self.tolerance, unit
                )
            case _:
                raise ValueError(f"未知的定位算法: {algorithm}")

    def estimate(
        self,
        registry: AnchorRegistry,
        snapshot: SignalSnapshot,
        algorithm: Algorithm = Algorithm.LEAST_SQUARES,
    ) -> Optional[LocationResult]:
        """
        根据本周期信号计算位置：
        - 可用信标 < 3：返回 None
        - 几何退化（共线/重合）：返回 None
        """
        measurements = self.measurements(registry, snapshot)
        if len(measurements) < 3:
            logger.debug("可用信标不足: %d", len(measurements))
            return None
        result = self.solve(measurements, algorithm)
        if result is None:
            logger.warning("%s 求解失败，信标几何退化", algorithm.value)
        return result

    def estimate_fused(
        self,
        registry: AnchorRegistry,
        snapshot: SignalSnapshot,
        weights: Mapping[Algorithm, float],
    ) -> Optional[LocationResult]:
        """运行多个算法并融合其中成功的结果"""
        measurements = self.measurements(registry, snapshot)
        candidates: List[Tuple[LocationResult, float]] = []
        for algorithm, weight in weights.items():
            result = self.solve(measurements, algorithm)
            if result is not None:
                candidates.append((result, weight))
        return fuse_results(candidates)
