from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional, Tuple

import numpy as np

from .models import LocationResult


logger = logging.getLogger(__name__)

Point3 = Tuple[float, float, float]


class Smoother:
    """
    时间序列平滑器统一接口

    不可重入：同一实例的 update 需由调用方串行化；
    每个被跟踪的终端使用独立实例。
    """

    def update(self, x: float, y: float, z: float, elapsed: float = 1.0) -> Point3:
        raise NotImplementedError

    @property
    def state(self) -> Optional[Point3]:
        raise NotImplementedError

    def reset(self, x: Optional[float] = None, y: Optional[float] = None,
              z: Optional[float] = None) -> None:
        raise NotImplementedError

    def smooth(self, location_result: LocationResult, elapsed: float = 1.0) -> LocationResult:
        """返回坐标经过平滑的新结果，置信度/误差/方法沿用原始结果"""
        x, y, z = self.update(location_result.x, location_result.y, location_result.z, elapsed)
        return location_result.with_position(x, y, z)


class ScalarKalmanFilter:
    """一维卡尔曼滤波器"""

    def __init__(self, q: float, r: float, initial: float = 0.0, p: float = 1.0):
        self.q = q  # 过程噪声
        self.r = r  # 测量噪声
        self.p = p  # 估计协方差
        self.value = initial

    def update(self, measurement: float) -> float:
        # 预测
        predicted_p = self.p + self.q
        # 卡尔曼增益
        k = predicted_p / (predicted_p + self.r)
        # 更新
        self.value = self.value + k * (measurement - self.value)
        self.p = (1.0 - k) * predicted_p
        return self.value


class KalmanSmoother(Smoother):
    """
    位置卡尔曼滤波：每个坐标轴一个独立的一维滤波器
    （假设各轴不相关，是近似处理）
    """

    def __init__(self, q: float = 0.001, r: float = 0.1, initial: Optional[Point3] = None,
                 p: float = 1.0):
        self.q = q
        self.r = r
        self.initial_p = p
        self._filters: Optional[Tuple[ScalarKalmanFilter, ...]] = None
        if initial is not None:
            self.reset(*initial)

    def reset(self, x: Optional[float] = None, y: Optional[float] = None,
              z: Optional[float] = None) -> None:
        if x is None or y is None or z is None:
            self._filters = None
            return
        self._filters = tuple(
            ScalarKalmanFilter(self.q, self.r, value, self.initial_p) for value in (x, y, z)
        )

    def update(self, x: float, y: float, z: float, elapsed: float = 1.0) -> Point3:
        if self._filters is None:
            # 首个测量直接作为初值
            self.reset(x, y, z)
            return (x, y, z)
        fx, fy, fz = self._filters
        return (fx.update(x), fy.update(y), fz.update(z))

    @property
    def state(self) -> Optional[Point3]:
        if self._filters is None:
            return None
        fx, fy, fz = self._filters
        return (fx.value, fy.value, fz.value)


class VelocityKalmanSmoother(Smoother):
    """
    位置 + 速度卡尔曼滤波（平面 x/y 两轴）

    预测：位置 += 速度 * dt；修正后由新息 / dt 重新估计速度。
    z 不参与滤波，直接透传测量值。
    """

    def __init__(
        self,
        x: Optional[float] = None,
        y: Optional[float] = None,
        p0: float = 100.0,
        velocity_variance: float = 1.0,
        process_noise: float = 10.0,
        measurement_noise: float = 50.0,
    ):
        self.p0 = p0
        self.velocity_variance = velocity_variance
        self.process_noise = process_noise
        self.measurement_noise = measurement_noise

        self.position: Optional[np.ndarray] = None
        self.velocity = np.zeros(2)
        self.covariance = np.full(2, p0)
        self.z: Optional[float] = None
        if x is not None and y is not None:
            self.reset(x, y)

    def reset(self, x: Optional[float] = None, y: Optional[float] = None,
              z: Optional[float] = None) -> None:
        self.velocity = np.zeros(2)
        self.covariance = np.full(2, self.p0)
        self.z = z
        self.position = None if x is None or y is None else np.array([x, y], dtype=float)

    def update(self, x: float, y: float, z: float, elapsed: float = 1.0) -> Point3:
        if self.position is None:
            self.reset(x, y, z)
            return (x, y, z)

        dt = elapsed
        measured = np.array([x, y], dtype=float)

        # 预测
        self.position = self.position + self.velocity * dt
        self.covariance = self.covariance + self.velocity_variance * dt * dt + self.process_noise

        # 更新
        gain = self.covariance / (self.covariance + self.measurement_noise)
        innovation = measured - self.position
        self.position = self.position + gain * innovation
        self.velocity = innovation / (dt + 1e-10)
        self.covariance = (1.0 - gain) * self.covariance

        self.z = z
        return (float(self.position[0]), float(self.position[1]), z)

    @property
    def state(self) -> Optional[Point3]:
        if self.position is None:
            return None
        z = self.z if self.z is not None else 0.0
        return (float(self.position[0]), float(self.position[1]), z)


class EmaSmoother(Smoother):
    """指数移动平均滤波，alpha 越小越平滑"""

    def __init__(self, alpha: float = 0.3):
        if not 0.0 < alpha <= 1.0:
            raise ValueError("EMA 平滑因子应在 (0, 1] 之间")
        self.alpha = alpha
        self._last: Optional[np.ndarray] = None

    def reset(self, x: Optional[float] = None, y: Optional[float] = None,
              z: Optional[float] = None) -> None:
        if x is None or y is None or z is None:
            self._last = None
        else:
            self._last = np.array([x, y, z], dtype=float)

    def update(self, x: float, y: float, z: float, elapsed: float = 1.0) -> Point3:
        current = np.array([x, y, z], dtype=float)
        if self._last is None:
            self._last = current
        else:
            self._last = self.alpha * current + (1 - self.alpha) * self._last
        return (float(self._last[0]), float(self._last[1]), float(self._last[2]))

    @property
    def state(self) -> Optional[Point3]:
        if self._last is None:
            return None
        return (float(self._last[0]), float(self._last[1]), float(self._last[2]))


class SmootherType(Enum):
    KALMAN = "kalman"
    VELOCITY_KALMAN = "velocity_kalman"
    EMA = "ema"


def create_smoother(smoother_type: SmootherType | str, **params: Any) -> Smoother:
    """按类型创建平滑器；两种卡尔曼设计并列提供，不区分主次"""
    try:
        smoother_type = SmootherType(smoother_type)
    except ValueError:
        raise ValueError(f"未知的平滑器类型: {smoother_type}") from None
    logger.debug("创建平滑器: %s %s", smoother_type.value, params)

    match smoother_type:
        case SmootherType.KALMAN:
            return KalmanSmoother(**params)
        case SmootherType.VELOCITY_KALMAN:
            return VelocityKalmanSmoother(**params)
        case SmootherType.EMA:
            return EmaSmoother(**params)
    raise ValueError(f"未知的平滑器类型: {smoother_type}")
