from __future__ import annotations

import math

import numpy as np
import pytest

from ble_locator.distance_model import DistanceModel
from ble_locator.models import DistanceUnit


def test_distance_at_reference_power_is_one_meter() -> None:
    model = DistanceModel.log_distance(-50.0, -40.0, DistanceUnit.CENTIMETER)
    assert model.distance_from_rssi(-50) == pytest.approx(100.0)

    model_m = DistanceModel.log_distance(-50.0, -40.0, DistanceUnit.METER)
    assert model_m.distance_from_rssi(-50) == pytest.approx(1.0)


def test_rssi_from_distance() -> None:
    model = DistanceModel.log_distance(-50.0, -40.0, DistanceUnit.CENTIMETER)
    assert model.rssi_from_distance(100.0) == pytest.approx(-50.0)
    assert model.rssi_from_distance(1000.0) == pytest.approx(-90.0)


@pytest.mark.parametrize("distance", [0.0, -5.0])
def test_rssi_from_non_positive_distance_is_negative_infinity(distance: float) -> None:
    model = DistanceModel.log_distance(-50.0, -40.0)
    assert model.rssi_from_distance(distance) == -math.inf


@pytest.mark.parametrize("rssi", [-30, -49, -60, -75, -90, -100])
@pytest.mark.parametrize("unit", list(DistanceUnit))
def test_round_trip(rssi: int, unit: DistanceUnit) -> None:
    model = DistanceModel.fitted(-49.656, -43.284, 4.328, unit)
    assert model.rssi_from_distance(model.distance_from_rssi(rssi)) == pytest.approx(
        rssi, abs=1e-6
    )


def test_zero_slope_is_rejected_on_conversion() -> None:
    model = DistanceModel.log_distance(-50.0, 0.0)
    with pytest.raises(ValueError):
        model.distance_from_rssi(-60)


def test_convert_uses_meters_as_pivot() -> None:
    model = DistanceModel.log_distance(-50.0, -40.0, DistanceUnit.CENTIMETER)
    assert model.convert(100.0, DistanceUnit.METER) == pytest.approx(1.0)
    assert model.convert(100.0, DistanceUnit.MILLIMETER) == pytest.approx(1000.0)
    assert model.convert(100.0, DistanceUnit.CENTIMETER) == pytest.approx(100.0)
    assert model.convert(-1.0, DistanceUnit.METER) == 0.0


def test_validate() -> None:
    assert DistanceModel.log_distance(-50.0, -40.0).validate() is None
    assert DistanceModel.log_distance(-50.0, -40.0).is_valid

    reason = DistanceModel.log_distance(-50.0, 10.0).validate()
    assert reason is not None and "斜率" in reason

    reason = DistanceModel.log_distance(5.0, -40.0).validate()
    assert reason is not None and "截距" in reason


def test_invalid_model_is_still_usable() -> None:
    model = DistanceModel.log_distance(5.0, -40.0)
    assert not model.is_valid
    assert model.distance_from_rssi(5) == pytest.approx(100.0)


def test_presets() -> None:
    free = DistanceModel.free_space(-50.0, DistanceUnit.METER)
    assert (free.b, free.n, free.model_type) == (-20.0, 2.0, "free_space")

    shadow = DistanceModel.log_normal_shadow(-50.0, 2.5)
    assert shadow.b == pytest.approx(-25.0)
    assert shadow.model_type == "log_normal_shadow"

    custom = DistanceModel.custom(-45.0, -30.0, 3.0, "office")
    assert custom.model_type == "office"

    fitted = DistanceModel.fitted(-49.656, -43.284, 4.328)
    assert fitted.model_type == "fitted"
    assert fitted.a == -49.656


def test_presets_share_one_formula() -> None:
    shadow = DistanceModel.log_normal_shadow(-50.0, 2.0, DistanceUnit.METER)
    free = DistanceModel.free_space(-50.0, DistanceUnit.METER)
    for rssi in (-55, -70, -85):
        assert shadow.distance_from_rssi(rssi) == pytest.approx(free.distance_from_rssi(rssi))


def test_fit_recovers_parameters() -> None:
    distances = [50.0, 100.0, 200.0, 400.0, 800.0]
    rssis = [-49.656 - 43.284 * np.log10(d / 100.0) for d in distances]

    model = DistanceModel.fit(distances, rssis, DistanceUnit.CENTIMETER)

    assert model.a == pytest.approx(-49.656, abs=1e-6)
    assert model.b == pytest.approx(-43.284, abs=1e-6)
    assert model.n == pytest.approx(4.3284, abs=1e-6)
    assert model.model_type == "fitted"


@pytest.mark.parametrize(
    "distances, rssis",
    [([100.0], [-50.0]), ([100.0, -1.0], [-50.0, -60.0]), ([100.0, 200.0], [-50.0])],
)
def test_fit_rejects_bad_samples(distances, rssis) -> None:
    with pytest.raises(ValueError):
        DistanceModel.fit(distances, rssis)


def test_from_config() -> None:
    model = DistanceModel.from_config({"a": -49, "b": -40, "unit": "m"})
    assert model.a == -49.0
    assert model.b == -40.0
    assert model.n == 0.0
    assert model.unit is DistanceUnit.METER
    assert "log_distance" in str(model)
