from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .anchor_registry import AnchorRegistry
from .config_manager import ConfigManager
from .distance_model import DistanceModel
from .estimator import Algorithm, Estimator
from .filters import Smoother, SmootherType, create_smoother
from .history import ResultHistory
from .models import LocationResult
from .signals import SignalSnapshot


logger = logging.getLogger(__name__)


class Locator:
    """
    定位流水线：信号快照 -> 距离 -> 求解 -> 平滑 -> 历史记录

    每个终端（tag_id）拥有独立的平滑器与历史序列。
    本类不加锁，同一终端的并发调用需由调用方串行化。
    """

    def __init__(
        self,
        registry: AnchorRegistry,
        model: DistanceModel,
        estimator: Optional[Estimator] = None,
        algorithm: Algorithm = Algorithm.LEAST_SQUARES,
        smoother_type: SmootherType = SmootherType.KALMAN,
        smoother_params: Optional[Dict[str, Any]] = None,
        history_size: Optional[int] = None,
    ):
        self.registry = registry
        self.model = model
        self.estimator = estimator or Estimator(model)
        self.algorithm = algorithm
        self.smoother_type = SmootherType(smoother_type)
        self.smoother_params = dict(smoother_params or {})
        self.history_size = history_size

        self._smoothers: Dict[str, Smoother] = {}
        self._histories: Dict[str, ResultHistory] = {}

        reason = model.validate()
        if reason is not None:
            logger.warning("RSSI 模型参数可疑: %s (%s)", reason, model.description())

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "Locator":
        model = DistanceModel.from_config(config_manager.get_distance_model_config())

        csv_path = config_manager.get_anchor_csv_path()
        if csv_path:
            registry = AnchorRegistry.from_csv(csv_path)
        else:
            registry = AnchorRegistry.from_records(config_manager.get_anchor_records())

        estimator_config = config_manager.get_estimator_config()
        smoother_type = SmootherType(config_manager.get_smoother_config()["type"])
        return cls(
            registry,
            model,
            estimator=Estimator.from_config(model, estimator_config),
            algorithm=Algorithm(estimator_config.get("algorithm", "least_squares")),
            smoother_type=smoother_type,
            smoother_params=config_manager.get_smoother_params(smoother_type.value),
        )

    # ---------- Per-tag state ----------
    def smoother(self, tag_id: str = "default") -> Smoother:
        if tag_id not in self._smoothers:
            self._smoothers[tag_id] = create_smoother(self.smoother_type, **self.smoother_params)
        return self._smoothers[tag_id]

    def history(self, tag_id: str = "default") -> ResultHistory:
        if tag_id not in self._histories:
            self._histories[tag_id] = ResultHistory(self.history_size)
        return self._histories[tag_id]

    def reset(self, tag_id: Optional[str] = None) -> None:
        """重置指定终端（或全部终端）的平滑状态与历史"""
        if tag_id is None:
            self._smoothers.clear()
            self._histories.clear()
            return
        self._smoothers.pop(tag_id, None)
        self._histories.pop(tag_id, None)

    # ---------- Core processing ----------
    def locate(
        self, snapshot: SignalSnapshot, tag_id: str = "default", elapsed: float = 1.0
    ) -> Optional[LocationResult]:
        raw = self.estimator.estimate(self.registry, snapshot, self.algorithm)
        if raw is None:
            logger.warning(
                "终端 %s 位置计算失败: 信号 %d 条, 可用信标不足或几何退化", tag_id, len(snapshot)
            )
            return None

        smoothed = self.smoother(tag_id).smooth(raw, elapsed)
        self.history(tag_id).push(smoothed)
        logger.debug(
            "终端 %s 位置: 原始 (%.2f, %.2f, %.2f) -> 平滑 (%.2f, %.2f, %.2f), 方法: %s, 信标数: %d",
            tag_id,
            raw.x,
            raw.y,
            raw.z,
            smoothed.x,
            smoothed.y,
            smoothed.z,
            smoothed.method,
            smoothed.beacon_count,
        )
        return smoothed
