from __future__ import annotations

import pytest

from hfds_core import (
    KEY_BINDINGS,
    SCENARIOS,
    STATUS_COLOR,
    STATUS_TEXT,
    WARNING_TEXT,
    Command,
    Decision,
    HfdsConfigError,
    HfdsController,
    HfdsState,
    Origin,
    ScenarioRunner,
    WarningLevel,
    command_for_key,
    scenario_by_key,
)


def test_key_bindings_match_demo_keyboard() -> None:
    assert command_for_key("a") == (Command.ENGAGE, Origin.DRIVER_ASSIST)
    assert command_for_key("s") == (Command.MANUAL_OVERRIDE, Origin.DRIVER_INPUT)
    assert command_for_key("d")[0] is Command.DISTRACTION_START
    assert command_for_key("l")[0] is Command.ATTENTION_RESTORED
    assert command_for_key("f")[0] is Command.FAULT_DETECTED
    assert command_for_key("r")[0] is Command.FAULT_CLEARED
    assert command_for_key("q") is None
    assert command_for_key("") is None
    assert len(KEY_BINDINGS) == 6


def test_every_state_and_level_has_hmi_text() -> None:
    assert set(STATUS_TEXT) == set(HfdsState)
    assert set(STATUS_COLOR) == set(HfdsState)
    assert set(WARNING_TEXT) == set(WarningLevel)
    assert STATUS_TEXT[HfdsState.ELIGIBLE] == "HFDS Status: Ready"
    assert WARNING_TEXT[WarningLevel.HAPTIC].startswith("HAPTIC")


def test_scenario_library() -> None:
    assert [s.key for s in SCENARIOS] == ["s1", "s2", "s3"]
    assert scenario_by_key("s2").title == "Scenario 2: System Fault"
    assert scenario_by_key("nope") is None
    for scn in SCENARIOS:
        assert scn.steps
        assert all(step.t < scn.duration for step in scn.script)


def test_scenario_1_ends_in_mrm() -> None:
    runner = ScenarioRunner(HfdsController())
    runner.start(scenario_by_key("s1"))
    snap = runner.run_to_end(dt=0.1)
    assert not runner.is_active()
    assert snap.hfds_state == HfdsState.ABORTING
    assert snap.mrm_active is True
    assert runner.controller.get_audit_log()[-1].command == "ABORT_INATTENTION"


def test_scenario_2_fault_then_recover() -> None:
    c = HfdsController()
    runner = ScenarioRunner(c)
    runner.start(scenario_by_key("s2"))
    snap = runner.run_to_end(dt=0.05)
    assert snap.hfds_state == HfdsState.ELIGIBLE
    assert snap.fault_active is False
    assert [r.command for r in c.get_audit_log()] == ["ENGAGE", "ABORT_FAULT", "MANUAL_OVERRIDE"]


def test_scenario_3_override_allows() -> None:
    c = HfdsController()
    runner = ScenarioRunner(c)
    runner.start(scenario_by_key("s3"))
    snap = runner.run_to_end()
    assert snap.hfds_state == HfdsState.ELIGIBLE
    last = c.get_audit_log()[-1]
    assert (last.command, last.decision) == ("MANUAL_OVERRIDE", Decision.ALLOW)


def test_start_resets_controller() -> None:
    c = HfdsController()
    c.press_key("a")
    c.press_key("f")
    runner = ScenarioRunner(c)
    runner.start(scenario_by_key("s3"))
    assert c.hfds_state == HfdsState.ELIGIBLE
    assert c.fault_active is False
    assert c.get_audit_log() == ()


def test_stopped_runner_does_not_step() -> None:
    c = HfdsController()
    runner = ScenarioRunner(c)
    assert runner.step(1.0) is False
    runner.start(scenario_by_key("s1"))
    runner.stop()
    assert runner.step(5.0) is False
    assert c.sim_time == 0.0


def test_run_to_end_needs_positive_step() -> None:
    runner = ScenarioRunner(HfdsController())
    runner.start(scenario_by_key("s3"))
    with pytest.raises(HfdsConfigError):
        runner.run_to_end(dt=0.0)
