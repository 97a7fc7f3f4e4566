"""BLE Locator package.

This package provides:
- DistanceModel: RSSI <-> distance log-distance path-loss model
- AnchorRegistry / SignalSnapshot: beacon positions and per-cycle RSSI readings
- Estimator: trilateration (exact / weighted / least-squares) and result fusion
- Smoothers: per-axis Kalman, position+velocity Kalman and EMA filters
- ResultHistory: append-only result sequence with averages
- Locator: end-to-end positioning pipeline
- ConfigManager: YAML-based configuration management
"""

from .models import (
    Anchor,
    DistanceUnit,
    LocationMethod,
    LocationResult,
    RangeMeasurement,
    SignalMeasurement,
)
from .distance_model import DistanceModel
from .anchor_registry import AnchorRegistry
from .signals import SignalSnapshot
from .estimator import (
    Algorithm,
    Estimator,
    fuse_results,
    inverse_square_distance_weight,
    unit_scaled_inverse_square_weight,
    rssi_strength_weight,
    solve_exact,
    solve_least_squares,
    solve_weighted,
)
from .filters import (
    EmaSmoother,
    KalmanSmoother,
    ScalarKalmanFilter,
    Smoother,
    SmootherType,
    VelocityKalmanSmoother,
    create_smoother,
)
from .history import ResultHistory
from .config_manager import ConfigManager
from .locator import Locator

__all__ = [
    "Anchor",
    "DistanceUnit",
    "LocationMethod",
    "LocationResult",
    "RangeMeasurement",
    "SignalMeasurement",
    "DistanceModel",
    "AnchorRegistry",
    "SignalSnapshot",
    "Algorithm",
    "Estimator",
    "fuse_results",
    "inverse_square_distance_weight",
    "unit_scaled_inverse_square_weight",
    "rssi_strength_weight",
    "solve_exact",
    "solve_least_squares",
    "solve_weighted",
    "EmaSmoother",
    "KalmanSmoother",
    "ScalarKalmanFilter",
    "Smoother",
    "SmootherType",
    "VelocityKalmanSmoother",
    "create_smoother",
    "ResultHistory",
    "ConfigManager",
    "Locator",
]
