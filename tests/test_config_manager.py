from __future__ import annotations

import yaml

from ble_locator.config_manager import ConfigManager


def test_missing_file_is_created_with_defaults(tmp_path) -> None:
    path = tmp_path / "config" / "config.yaml"

    config = ConfigManager(str(path))

    assert path.exists()
    model = config.get_distance_model_config()
    assert model["a"] == -49.0
    assert model["b"] == -40.0
    assert model["unit"] == "cm"
    assert config.get_estimator_config()["iterations"] == 5
    assert config.get_estimator_config()["step_size"] == 0.05
    assert config.get_smoother_config()["type"] == "kalman"
    assert config.get_anchor_records() == []
    assert config.get_anchor_csv_path() is None


def test_env_overrides_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("BLE_MODEL_A", "-55.5")
    monkeypatch.setenv("BLE_ESTIMATOR_ITERATIONS", "12")
    monkeypatch.setenv("BLE_SMOOTHER_TYPE", "ema")

    config = ConfigManager(str(tmp_path / "config.yaml"))

    assert config.get_distance_model_config()["a"] == -55.5
    assert config.get_estimator_config()["iterations"] == 12
    assert config.get_smoother_params() == {"alpha": 0.3}


def test_config_path_from_env(tmp_path, monkeypatch) -> None:
    path = tmp_path / "from_env.yaml"
    monkeypatch.setenv("BLE_LOCATOR_CONFIG", str(path))

    config = ConfigManager()

    assert config.config_file == str(path)
    assert path.exists()


def test_partial_file_is_merged_with_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "distance_model": {"a": -60.0, "b": -30.0, "unit": "m"},
                "anchors": [{"id": "B1", "name": "Beacon1", "x": 0, "y": 0, "z": 1}],
                "smoother": {"type": "velocity_kalman", "velocity_kalman": {"p0": 10.0}},
            }
        ),
        encoding="utf-8",
    )

    config = ConfigManager(str(path))

    model = config.get_distance_model_config()
    assert (model["a"], model["b"], model["unit"]) == (-60.0, -30.0, "m")
    assert model["model_type"] == "log_distance"
    assert config.get_anchor_records()[0]["id"] == "B1"
    params = config.get_smoother_params()
    assert params["p0"] == 10.0
    assert params["measurement_noise"] == 50.0


def test_broken_file_falls_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("distance_model: [unclosed\n", encoding="utf-8")

    config = ConfigManager(str(path))

    assert config.get_distance_model_config()["a"] == -49.0


def test_setters_persist(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    config = ConfigManager(str(path))

    config.set_distance_model_config(-49.656, -43.284, 4.328, unit="mm", model_type="fitted")
    config.set_estimator_config("exact", iterations=8, step_size=0.1, tolerance=0.01)

    reloaded = ConfigManager(str(path))
    model = reloaded.get_distance_model_config()
    assert (model["a"], model["b"], model["n"]) == (-49.656, -43.284, 4.328)
    assert model["unit"] == "mm"
    assert model["model_type"] == "fitted"
    estimator = reloaded.get_estimator_config()
    assert estimator["algorithm"] == "exact"
    assert estimator["iterations"] == 8
    assert estimator["tolerance"] == 0.01


def test_non_mapping_file_falls_back_to_defaults(tmp_path, caplog) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    config = ConfigManager(str(path))

    assert config.get_distance_model_config()["a"] == -49.0
    assert config.get_smoother_config()["type"] == "kalman"
    assert "使用默认配置" in caplog.text


def test_invalid_sections_are_replaced_by_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "distance_model:\n  a: -60.0\nsmoother: null\nestimator: 3\nanchors: oops\n",
        encoding="utf-8",
    )

    config = ConfigManager(str(path))

    assert config.get_distance_model_config()["a"] == -60.0
    assert config.get_smoother_config()["type"] == "kalman"
    assert config.get_smoother_params() == {"q": 0.001, "r": 0.1}
    assert config.get_estimator_config()["iterations"] == 5
    assert config.get_anchor_records() == []
