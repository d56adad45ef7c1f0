from __future__ import annotations

import dataclasses

import pytest

from hfds_core import (
    ENV_CONFIG_FIELDS,
    HfdsConfig,
    HfdsConfigError,
    HfdsController,
    HfdsState,
    VehicleParameters,
)


def test_defaults_match_demo_vehicle() -> None:
    cfg = HfdsConfig()
    assert cfg.vehicle == VehicleParameters(speed_kmh=80.0, road_supported=True, map_freshness_h=12.0)
    assert cfg.warning_thresholds_s == (5.0, 10.0, 15.0)
    assert cfg.abort_threshold_s == 20.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"speed_kmh": -1.0},
        {"speed_kmh": float("nan")},
        {"map_freshness_h": float("inf")},
        {"speed_kmh": "80"},
    ],
)
def test_vehicle_parameters_validation(kwargs: dict) -> None:
    with pytest.raises(HfdsConfigError):
        VehicleParameters(**kwargs)


def test_config_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        VehicleParameters(speed_kmh=-5.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_speed_kmh": 140.0},
        {"warning_thresholds_s": (5.0, 5.0, 15.0)},
        {"warning_thresholds_s": (5.0, 10.0)},
        {"abort_threshold_s": 12.0},
    ],
)
def test_config_validation(kwargs: dict) -> None:
    with pytest.raises(HfdsConfigError):
        HfdsConfig(**kwargs)


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HFDS_SPEED_KMH", "100")
    monkeypatch.setenv("HFDS_ROAD_SUPPORTED", "no")
    monkeypatch.setenv("HFDS_MAP_FRESHNESS_H", "3.5")
    monkeypatch.setenv("HFDS_ABORT_THRESHOLD_S", "25")

    cfg = HfdsConfig.from_env()
    assert cfg.vehicle == VehicleParameters(speed_kmh=100.0, road_supported=False, map_freshness_h=3.5)
    assert cfg.abort_threshold_s == 25.0
    assert HfdsController(config=cfg).hfds_state == HfdsState.OFF


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HFDS_MAX_SPEED_KMH", "110")
    monkeypatch.setenv("HFDS_SPEED_KMH", "120")

    cfg = HfdsConfig.from_env(max_speed_kmh=150.0, vehicle={"speed_kmh": 90.0})
    assert cfg.max_speed_kmh == 150.0
    assert cfg.vehicle.speed_kmh == 90.0


def test_from_env_reads_warning_thresholds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HFDS_WARNING_THRESHOLDS_S", "3, 6, 9")
    monkeypatch.setenv("HFDS_ABORT_THRESHOLD_S", "12")

    cfg = HfdsConfig.from_env()
    assert cfg.warning_thresholds_s == (3.0, 6.0, 9.0)
    assert cfg.abort_threshold_s == 12.0


@pytest.mark.parametrize("raw", ["3,6", "3,x,9"])
def test_from_env_rejects_bad_warning_thresholds(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("HFDS_WARNING_THRESHOLDS_S", raw)
    with pytest.raises(HfdsConfigError):
        HfdsConfig.from_env()


def test_env_config_fields_are_config_attributes() -> None:
    names = {f.name for f in dataclasses.fields(HfdsConfig)}
    assert all(field_name in names for _, field_name in ENV_CONFIG_FIELDS)


def test_from_env_rejects_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HFDS_SPEED_KMH", "fast")
    with pytest.raises(HfdsConfigError):
        HfdsConfig.from_env()


def test_custom_thresholds_drive_the_controller() -> None:
    cfg = HfdsConfig(warning_thresholds_s=(1.0, 2.0, 3.0), abort_threshold_s=4.0)
    c = HfdsController(config=cfg)
    c.press_key("a")
    c.press_key("d")
    c.tick(4.5)
    assert c.hfds_state == HfdsState.ABORTING
