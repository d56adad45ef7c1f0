from __future__ import annotations

import pytest

from hfds_core import HfdsController, HfdsState, Origin, VehicleParameters


@pytest.fixture
def params() -> VehicleParameters:
    return VehicleParameters(speed_kmh=80.0, road_supported=True, map_freshness_h=12.0)


@pytest.fixture
def controller(params: VehicleParameters) -> HfdsController:
    return HfdsController(params=params, clock=lambda: 1000.0)


@pytest.fixture
def engaged(controller: HfdsController) -> HfdsController:
    controller.submit_command("ENGAGE", "DriverAssist")
    assert controller.hfds_state == HfdsState.ENGAGED
    return controller


@pytest.fixture
def distracted(engaged: HfdsController) -> HfdsController:
    engaged.submit_command("DISTRACTION_START", Origin.DRIVER_MONITOR)
    return engaged
