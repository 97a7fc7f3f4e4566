from __future__ import annotations

import copy
import logging
import os
from typing import Any, Callable, Dict, List, Optional

import yaml


logger = logging.getLogger(__name__)


def _env_or_default(env_key: str, default: Any, cast: Callable[[str], Any] = str) -> Any:
    v = os.environ.get(env_key)
    if v is not None:
        try:
            return cast(v)
        except ValueError:
            logger.warning("环境变量 %s=%r 无法转换，使用原始字符串", env_key, v)
            return v
    return default


def _default_config_path() -> str:
    return _env_or_default("BLE_LOCATOR_CONFIG", os.path.join(".", "config", "config.yaml"))


class ConfigManager:
    """配置管理类，负责读写YAML配置文件"""

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file or _default_config_path()
        self.default_config: Dict[str, Any] = {
            "distance_model": {
                "a": _env_or_default("BLE_MODEL_A", -49.0, float),
                "b": _env_or_default("BLE_MODEL_B", -40.0, float),
                "n": _env_or_default("BLE_MODEL_N", 0.0, float),
                "unit": _env_or_default("BLE_MODEL_UNIT", "cm"),
                "model_type": _env_or_default("BLE_MODEL_TYPE", "log_distance"),
            },
            "estimator": {
                "algorithm": _env_or_default("BLE_ESTIMATOR_ALGORITHM", "least_squares"),
                "iterations": _env_or_default("BLE_ESTIMATOR_ITERATIONS", 5, int),
                "step_size": _env_or_default("BLE_ESTIMATOR_STEP_SIZE", 0.05, float),
                "tolerance": _env_or_default("BLE_ESTIMATOR_TOLERANCE", None, float),
                "weight_policy": _env_or_default("BLE_ESTIMATOR_WEIGHT_POLICY", "rssi_strength"),
            },
            "smoother": {
                "type": _env_or_default("BLE_SMOOTHER_TYPE", "kalman"),
                "kalman": {"q": 0.001, "r": 0.1},
                "velocity_kalman": {
                    "p0": 100.0,
                    "velocity_variance": 1.0,
                    "process_noise": 10.0,
                    "measurement_noise": 50.0,
                },
                "ema": {"alpha": 0.3},
            },
            "anchors": [],
            "paths": {
                "anchor_csv": _env_or_default("BLE_PATH_ANCHOR_CSV", None),
            },
        }
        self.load_config()

    def load_config(self) -> None:
        """加载配置文件，如果不存在则创建默认配置"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f)
                if loaded is None:
                    loaded = {}
                if not isinstance(loaded, dict):
                    logger.warning(
                        "配置文件 %s 顶层不是字典 (%s)，使用默认配置",
                        self.config_file,
                        type(loaded).__name__,
                    )
                    loaded = {}
                self.config = loaded
                self._merge_default_config()
            else:
                self.config = copy.deepcopy(self.default_config)
                self.save_config()
        except (OSError, yaml.YAMLError) as e:
            # 发生异常时回退到默认配置
            logger.warning("读取配置文件 %s 失败，使用默认配置: %s", self.config_file, e)
            self.config = copy.deepcopy(self.default_config)

    def _merge_default_config(self) -> None:
        def merge_dict(default, current, prefix=""):
            for key, value in default.items():
                if key not in current:
                    current[key] = copy.deepcopy(value)
                elif isinstance(value, (dict, list)) and not isinstance(current[key], type(value)):
                    # 段落类型不符（如 smoother: null）时整段使用默认值
                    logger.warning(
                        "配置项 %s%s 类型无效 (%s)，使用默认值",
                        prefix,
                        key,
                        type(current[key]).__name__,
                    )
                    current[key] = copy.deepcopy(value)
                elif isinstance(value, dict):
                    merge_dict(value, current[key], f"{prefix}{key}.")

        merge_dict(self.default_config, self.config)

    def save_config(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.config_file) or ".", exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.dump(
                    self.config,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    indent=2,
                )
        except OSError as e:
            logger.error("保存配置文件 %s 失败: %s", self.config_file, e)

    # ---------- Accessors ----------
    def get_distance_model_config(self) -> Dict[str, Any]:
        return self.config["distance_model"]

    def get_estimator_config(self) -> Dict[str, Any]:
        return self.config["estimator"]

    def get_smoother_config(self) -> Dict[str, Any]:
        return self.config["smoother"]

    def get_smoother_params(self, smoother_type: Optional[str] = None) -> Dict[str, Any]:
        smoother = self.get_smoother_config()
        return dict(smoother.get(smoother_type or smoother["type"]) or {})

    def get_anchor_records(self) -> List[Dict[str, Any]]:
        return list(self.config.get("anchors") or [])

    def get_paths(self) -> Dict[str, Any]:
        return self.config.get("paths", {})

    def get_anchor_csv_path(self) -> Optional[str]:
        return self.get_paths().get("anchor_csv")

    def set_distance_model_config(
        self, a: float, b: float, n: float, unit: str | None = None, model_type: str | None = None
    ) -> None:
        self.config["distance_model"]["a"] = a
        self.config["distance_model"]["b"] = b
        self.config["distance_model"]["n"] = n
        if unit is not None:
            self.config["distance_model"]["unit"] = unit
        if model_type is not None:
            self.config["distance_model"]["model_type"] = model_type
        self.save_config()

    def set_estimator_config(
        self,
        algorithm: str = "least_squares",
        iterations: int = 5,
        step_size: float = 0.05,
        tolerance: float | None = None,
    ) -> None:
        self.config["estimator"]["algorithm"] = algorithm
        self.config["estimator"]["iterations"] = iterations
        self.config["estimator"]["step_size"] = step_size
        self.config["estimator"]["tolerance"] = tolerance
        self.save_config()
