# hfds_core.py
# ============================================================
# HFDS (Hands-Free Driving System) control core (headless)
# Authorization gate, eligibility, inattention escalation,
# engagement state machine, audit log, scenario scripts
# ============================================================

import logging
import math
import os
import time
from dataclasses import dataclass, field, asdict
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union

_logger = logging.getLogger(__name__)


# ============================================================
# --- Constants & Errors
# ============================================================

HFDS_MIN_SPEED_KMH = 72.0
HFDS_MAX_SPEED_KMH = 130.0
MAP_FRESHNESS_LIMIT_H = 24.0            # map data must be strictly younger than this
WARNING_THRESHOLDS_S = (5.0, 10.0, 15.0)  # elapsed distraction > t -> VISUAL, AUDIO, HAPTIC
ABORT_THRESHOLD_S = 20.0                # at HAPTIC, elapsed > t -> ABORT_INATTENTION

# HfdsConfig scalar fields that HfdsConfig.from_env reads from the environment
ENV_CONFIG_FIELDS = (
    ("HFDS_MIN_SPEED_KMH", "min_speed_kmh"),
    ("HFDS_MAX_SPEED_KMH", "max_speed_kmh"),
    ("HFDS_MAX_MAP_AGE_H", "max_map_age_h"),
    ("HFDS_ABORT_THRESHOLD_S", "abort_threshold_s"),
)


class HfdsError(Exception):
    """Base exception for the HFDS core."""


class HfdsConfigError(HfdsError, ValueError):
    """Invalid configuration or vehicle parameters."""


# ============================================================
# --- States, Commands, Origins
# ============================================================

class HfdsState(IntEnum):
    OFF = 0
    ELIGIBLE = 1
    ENGAGED = 2
    ABORTING = 3
    FAULT = 4

class DriverState(IntEnum):
    ATTENTIVE = 0
    DISTRACTED = 1

class WarningLevel(IntEnum):
    NONE = 0
    VISUAL = 1
    AUDIO = 2
    HAPTIC = 3

class Command(Enum):
    ENGAGE = "ENGAGE"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"
    DISTRACTION_START = "DISTRACTION_START"
    ATTENTION_RESTORED = "ATTENTION_RESTORED"
    FAULT_DETECTED = "FAULT_DETECTED"
    FAULT_CLEARED = "FAULT_CLEARED"
    ABORT_FAULT = "ABORT_FAULT"
    ABORT_INATTENTION = "ABORT_INATTENTION"

class Origin(Enum):
    DRIVER_ASSIST = "DriverAssist"
    DRIVER_INPUT = "DriverInput"
    SYSTEM_MONITOR = "SystemMonitor"
    DRIVER_ATTENTION_SYSTEM = "DriverAttentionSystem"
    DRIVER_MONITOR = "DriverMonitor"    # camera events, never gated
    SIMULATOR = "Simulator"             # injected sim events, never gated

class Decision(Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"

CommandLike = Union[Command, str]
OriginLike = Union[Origin, str]


def parse_command(command: CommandLike) -> Optional[Command]:
    """Map a command or its name onto the closed Command set, None if unknown."""
    if isinstance(command, Command):
        return command
    try:
        return Command(str(command).strip().upper())
    except ValueError:
        return None


def parse_origin(origin: OriginLike) -> Optional[Origin]:
    if isinstance(origin, Origin):
        return origin
    try:
        return Origin(str(origin).strip())
    except ValueError:
        return None


def _name(value: Union[Enum, str]) -> str:
    return value.value if isinstance(value, Enum) else str(value)


# ============================================================
# --- Configuration
# ============================================================

def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env: Mapping[str, str], key: str) -> Optional[float]:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError as ex:
        raise HfdsConfigError(f"{key} must be a number (got {raw!r})") from ex


def _env_floats(env: Mapping[str, str], key: str) -> Optional[Tuple[float, ...]]:
    """Comma separated numbers, e.g. ``HFDS_WARNING_THRESHOLDS_S=3,6,9``."""
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return tuple(float(part) for part in raw.split(","))
    except ValueError as ex:
        raise HfdsConfigError(f"{key} must be comma separated numbers (got {raw!r})") from ex


def _check_non_negative(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
        raise HfdsConfigError(f"{name} must be a finite, non-negative number (got {value!r})")


@dataclass(frozen=True)
class VehicleParameters:
    """Environment inputs supplied by the simulated vehicle; read-only to the core."""

    speed_kmh: float = 80.0
    road_supported: bool = True
    map_freshness_h: float = 12.0   # age of map data, smaller is fresher

    def __post_init__(self):
        _check_non_negative("speed_kmh", self.speed_kmh)
        _check_non_negative("map_freshness_h", self.map_freshness_h)


@dataclass(frozen=True)
class HfdsConfig:
    """Core tuning.

    Parameters
    ----------
    min_speed_kmh, max_speed_kmh : float
        Inclusive speed window in which HFDS may arm.
    max_map_age_h : float
        Map data must be strictly fresher than this to arm.
    warning_thresholds_s : tuple of float
        Distraction time after which VISUAL, AUDIO and HAPTIC warnings start.
    abort_threshold_s : float
        Distraction time at HAPTIC after which the inattention abort fires.
    vehicle : VehicleParameters
        Parameters used by ``reset()`` when none are given.
    """

    min_speed_kmh: float = HFDS_MIN_SPEED_KMH
    max_speed_kmh: float = HFDS_MAX_SPEED_KMH
    max_map_age_h: float = MAP_FRESHNESS_LIMIT_H
    warning_thresholds_s: Tuple[float, float, float] = WARNING_THRESHOLDS_S
    abort_threshold_s: float = ABORT_THRESHOLD_S
    vehicle: VehicleParameters = field(default_factory=VehicleParameters)

    def __post_init__(self):
        _check_non_negative("min_speed_kmh", self.min_speed_kmh)
        _check_non_negative("max_speed_kmh", self.max_speed_kmh)
        _check_non_negative("max_map_age_h", self.max_map_age_h)
        if self.min_speed_kmh > self.max_speed_kmh:
            raise HfdsConfigError("min_speed_kmh must not exceed max_speed_kmh")
        if len(self.warning_thresholds_s) != 3:
            raise HfdsConfigError("warning_thresholds_s needs exactly three entries")
        ladder = tuple(self.warning_thresholds_s) + (self.abort_threshold_s,)
        for t in ladder:
            _check_non_negative("threshold", t)
        if any(b <= a for a, b in zip(ladder, ladder[1:])):
            raise HfdsConfigError("warning and abort thresholds must be strictly increasing")
        if not isinstance(self.vehicle, VehicleParameters):
            raise HfdsConfigError("vehicle must be a VehicleParameters instance")

    @classmethod
    def from_env(cls, **overrides: Any) -> "HfdsConfig":
        """Create configuration from ``HFDS_*`` environment variables.

        Explicit keyword arguments override environment values. ``vehicle``
        may be given as a ``VehicleParameters`` or as a dict of its fields.
        """
        env = os.environ

        vehicle_kwargs: Dict[str, Any] = {}
        for env_key, field_name in (("HFDS_SPEED_KMH", "speed_kmh"), ("HFDS_MAP_FRESHNESS_H", "map_freshness_h")):
            val = _env_float(env, env_key)
            if val is not None:
                vehicle_kwargs[field_name] = val
        if "HFDS_ROAD_SUPPORTED" in env:
            vehicle_kwargs["road_supported"] = _env_bool(env.get("HFDS_ROAD_SUPPORTED"), True)

        vehicle_overrides = overrides.pop("vehicle", None)
        if isinstance(vehicle_overrides, dict):
            vehicle_kwargs.update(vehicle_overrides)
        elif isinstance(vehicle_overrides, VehicleParameters):
            vehicle_kwargs = asdict(vehicle_overrides)

        config_kwargs: Dict[str, Any] = {"vehicle": VehicleParameters(**vehicle_kwargs)}
        for env_key, field_name in ENV_CONFIG_FIELDS:
            val = _env_float(env, env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val
        thresholds = _env_floats(env, "HFDS_WARNING_THRESHOLDS_S")
        if thresholds is not None and "warning_thresholds_s" not in overrides:
            config_kwargs["warning_thresholds_s"] = thresholds

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


# ============================================================
# --- Audit Log
# ============================================================

@dataclass(frozen=True)
class AuditRecord:
    seq: int
    timestamp: float
    command: str
    origin: str
    decision: Decision

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    def describe(self) -> str:
        if self.allowed:
            return f"ALLOW: Command '{self.command}' from '{self.origin}' authorized."
        return f"DENY: Command '{self.command}' from '{self.origin}' rejected."


class AuditLog:
    """Append-only, ordered record of authorization decisions."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._seq = 0
        self._records: List[AuditRecord] = []

    def append(self, command: str, origin: str, decision: Decision) -> AuditRecord:
        self._seq += 1
        rec = AuditRecord(seq=self._seq, timestamp=self._clock(), command=command, origin=origin, decision=decision)
        self._records.append(rec)
        return rec

    def records(self) -> Tuple[AuditRecord, ...]:
        return tuple(self._records)

    def consume_since(self, last_seq: int) -> Tuple[int, List[AuditRecord]]:
        out = [rec for rec in self._records if rec.seq > last_seq]
        return (out[-1].seq if out else last_seq), out

    def last_seq(self) -> int:
        return self._seq

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AuditRecord]:
        return iter(tuple(self._records))


# ============================================================
# --- Authorization Gate
# ============================================================

DEFAULT_ACL: Mapping[Command, FrozenSet[Origin]] = MappingProxyType({
    Command.ENGAGE:            frozenset({Origin.DRIVER_ASSIST}),
    Command.MANUAL_OVERRIDE:   frozenset({Origin.DRIVER_INPUT}),
    Command.ABORT_FAULT:       frozenset({Origin.SYSTEM_MONITOR}),
    Command.ABORT_INATTENTION: frozenset({Origin.DRIVER_ATTENTION_SYSTEM}),
})

class AuthorizationGate:
    """
    Static ACL check. Every call leaves exactly one audit record; unknown
    commands or origins are denied.
    """
    def __init__(self, audit: AuditLog, acl: Mapping[Command, FrozenSet[Origin]] = DEFAULT_ACL):
        self.audit = audit
        self.acl = acl

    def authorize(self, command: CommandLike, origin: OriginLike) -> bool:
        cmd = parse_command(command)
        org = parse_origin(origin)
        allowed = cmd is not None and org is not None and org in self.acl.get(cmd, frozenset())

        rec = self.audit.append(
            cmd.value if cmd is not None else _name(command),
            org.value if org is not None else _name(origin),
            Decision.ALLOW if allowed else Decision.DENY,
        )
        if allowed:
            _logger.info(rec.describe())
        else:
            _logger.warning(rec.describe())
        return allowed


# ============================================================
# --- Eligibility Evaluator
# ============================================================

def check_eligibility(
    state: HfdsState,
    fault_active: bool,
    params: VehicleParameters,
    config: Optional[HfdsConfig] = None,
) -> HfdsState:
    """
    Returns the state after an eligibility check. Only ever arms OFF -> ELIGIBLE;
    ENGAGED/ABORTING/FAULT stay put while conditions hold. Any fault, or leaving
    the operating envelope, forces OFF.
    """
    cfg = config or HfdsConfig()
    if fault_active:
        return HfdsState.OFF
    in_envelope = (
        cfg.min_speed_kmh <= params.speed_kmh <= cfg.max_speed_kmh
        and params.road_supported
        and params.map_freshness_h < cfg.max_map_age_h
    )
    if not in_envelope:
        return HfdsState.OFF
    return HfdsState.ELIGIBLE if state == HfdsState.OFF else state


# ============================================================
# --- Inattention Escalation Timer
# ============================================================

class InattentionTimer:
    """
    Distraction clock + warning ladder. Runs only while ENGAGED and DISTRACTED;
    an attentive driver zeroes both. A long delta climbs the ladder one level at
    a time until no threshold is left to cross, so variable frame rates never
    miss an abort.
    """
    def __init__(self, config: HfdsConfig):
        self.config = config
        self.elapsed_s = 0.0
        self.level = WarningLevel.NONE

    def reset(self):
        self.elapsed_s = 0.0
        self.level = WarningLevel.NONE

    @property
    def abort_due(self) -> bool:
        return self.level == WarningLevel.HAPTIC and self.elapsed_s > self.config.abort_threshold_s

    def tick(self, dt: float, hfds_state: HfdsState, driver_state: DriverState) -> bool:
        """Advance by ``dt`` seconds; True when the inattention abort should fire."""
        abort = False
        if hfds_state == HfdsState.ENGAGED and driver_state == DriverState.DISTRACTED:
            self.elapsed_s += dt
            self._escalate()
            abort = self.abort_due

        if driver_state == DriverState.ATTENTIVE:
            self.reset()
        return abort

    def _escalate(self):
        thresholds = self.config.warning_thresholds_s
        while self.level < WarningLevel.HAPTIC and self.elapsed_s > thresholds[self.level]:
            self.level = WarningLevel(self.level + 1)
            _logger.info("Inattention warning %s after %.1fs", self.level.name, self.elapsed_s)


# ============================================================
# --- Snapshot + HMI mapping
# ============================================================

@dataclass(frozen=True)
class HfdsSnapshot:
    hfds_state: HfdsState
    driver_state: DriverState
    warning_level: WarningLevel
    distraction_timer: float
    mrm_active: bool
    fault_active: bool
    lane_markings_visible: bool
    sim_time: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hfds_state": int(self.hfds_state),
            "driver_state": int(self.driver_state),
            "warning_level": int(self.warning_level),
            "distraction_timer": self.distraction_timer,
            "mrm_active": self.mrm_active,
            "fault_active": self.fault_active,
            "lane_markings_visible": self.lane_markings_visible,
            "sim_time": self.sim_time,
        }


STATUS_TEXT = {
    HfdsState.ENGAGED:  "HFDS Status: Active",
    HfdsState.ELIGIBLE: "HFDS Status: Ready",
    HfdsState.OFF:      "HFDS Status: Unavailable / Manual",
    HfdsState.FAULT:    "HFDS Status: FAULT. Take Control.",
    HfdsState.ABORTING: "HFDS Status: ABORTING",
}

STATUS_COLOR = {
    HfdsState.ENGAGED:  (0, 255, 0),
    HfdsState.ELIGIBLE: (173, 216, 230),
    HfdsState.OFF:      (150, 150, 150),
    HfdsState.FAULT:    (255, 165, 0),
    HfdsState.ABORTING: (255, 0, 0),
}

WARNING_TEXT = {
    WarningLevel.NONE:   "",
    WarningLevel.VISUAL: "VISUAL: Eyes on Road!",
    WarningLevel.AUDIO:  "AUDIO: Eyes on Road!",
    WarningLevel.HAPTIC: "HAPTIC: Take Control Now!",
}

MRM_BANNER = "MINIMUM RISK MANEUVER\nVehicle Stopping"

# Demo keyboard: key -> (command, origin)
KEY_BINDINGS: Mapping[str, Tuple[Command, Origin]] = MappingProxyType({
    "a": (Command.ENGAGE,             Origin.DRIVER_ASSIST),
    "d": (Command.DISTRACTION_START,  Origin.DRIVER_MONITOR),
    "l": (Command.ATTENTION_RESTORED, Origin.DRIVER_MONITOR),
    "s": (Command.MANUAL_OVERRIDE,    Origin.DRIVER_INPUT),
    "f": (Command.FAULT_DETECTED,     Origin.SIMULATOR),
    "r": (Command.FAULT_CLEARED,      Origin.SIMULATOR),
})

def command_for_key(key: str) -> Optional[Tuple[Command, Origin]]:
    if not key:
        return None
    return KEY_BINDINGS.get(key.lower())


# ============================================================
# --- Control State Machine
# ============================================================

class HfdsController:
    """
    Owns all HFDS state. Commands enter through ``submit_command``; time enters
    through ``tick``. Guards are checked before the gate, so guard-rejected
    commands leave no audit trail while gate denials always do.

    While an MRM is running every command except MANUAL_OVERRIDE is dropped
    without consulting the gate.
    """
    def __init__(
        self,
        params: Optional[VehicleParameters] = None,
        config: Optional[HfdsConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or HfdsConfig()
        self._clock = clock
        self._handlers: Dict[Command, Callable[[OriginLike], None]] = {
            Command.ENGAGE:             self._on_engage,
            Command.MANUAL_OVERRIDE:    self._on_manual_override,
            Command.DISTRACTION_START:  self._on_distraction_start,
            Command.ATTENTION_RESTORED: self._on_attention_restored,
            Command.FAULT_DETECTED:     self._on_fault_detected,
            Command.FAULT_CLEARED:      self._on_fault_cleared,
            Command.ABORT_FAULT:        self._abort_fault,
            Command.ABORT_INATTENTION:  self._abort_inattention,
        }
        self.reset(params)

    # ---------------- lifecycle ----------------

    def reset(self, params: Optional[VehicleParameters] = None) -> None:
        if params is None:
            params = self.config.vehicle
        if not isinstance(params, VehicleParameters):
            raise HfdsConfigError("reset() needs VehicleParameters")

        self.params = params
        self.hfds_state = HfdsState.OFF
        self.driver_state = DriverState.ATTENTIVE
        self.timer = InattentionTimer(self.config)
        self.mrm_active = False
        self.fault_active = False
        self.lane_markings_visible = True
        self.sim_time = 0.0
        self.audit = AuditLog(clock=self._clock)
        self.gate = AuthorizationGate(self.audit)

        self._reevaluate_eligibility()
        _logger.info(
            "Simulation reset (speed=%.0f km/h, road_supported=%s, map_age=%.1f h) -> %s",
            params.speed_kmh, params.road_supported, params.map_freshness_h, self.hfds_state.name,
        )

    # ---------------- public interface ----------------

    def submit_command(self, command: CommandLike, origin: OriginLike) -> None:
        cmd = parse_command(command)
        if self.mrm_active and cmd is not Command.MANUAL_OVERRIDE:
            _logger.debug("MRM active: ignoring %s from %s", _name(command), _name(origin))
            return
        if cmd is None:
            # unknown names still reach the gate so the denial is audited
            self.gate.authorize(command, origin)
            return
        self._handlers[cmd](origin)

    def press_key(self, key: str) -> bool:
        binding = command_for_key(key)
        if binding is None:
            return False
        self.submit_command(*binding)
        return True

    def tick(self, delta_seconds: float) -> None:
        dt = float(delta_seconds)
        if not math.isfinite(dt) or dt < 0.0:
            _logger.warning("Ignoring invalid tick delta %r", delta_seconds)
            dt = 0.0
        self.sim_time += dt

        if self.mrm_active:
            return

        # fault abort, then inattention ladder, then attention reset (inside timer.tick)
        self._abort_fault(Origin.SYSTEM_MONITOR)
        if self.timer.tick(dt, self.hfds_state, self.driver_state):
            self._abort_inattention(Origin.DRIVER_ATTENTION_SYSTEM)

    def get_snapshot(self) -> HfdsSnapshot:
        return HfdsSnapshot(
            hfds_state=self.hfds_state,
            driver_state=self.driver_state,
            warning_level=self.timer.level,
            distraction_timer=self.timer.elapsed_s,
            mrm_active=self.mrm_active,
            fault_active=self.fault_active,
            lane_markings_visible=self.lane_markings_visible,
            sim_time=self.sim_time,
        )

    def get_audit_log(self) -> Tuple[AuditRecord, ...]:
        return self.audit.records()

    # ---------------- transitions ----------------

    def _set_state(self, new_state: HfdsState, reason: str = "") -> None:
        if new_state != self.hfds_state:
            _logger.info("HFDS %s -> %s%s", self.hfds_state.name, new_state.name, f" ({reason})" if reason else "")
        self.hfds_state = new_state

    def _reevaluate_eligibility(self) -> None:
        self._set_state(
            check_eligibility(self.hfds_state, self.fault_active, self.params, self.config),
            "eligibility check",
        )

    def _on_engage(self, origin: OriginLike) -> None:
        if self.hfds_state != HfdsState.ELIGIBLE:
            return
        if not self.gate.authorize(Command.ENGAGE, origin):
            return
        self._set_state(HfdsState.ENGAGED, "engaged")
        self.timer.reset()

    def _on_distraction_start(self, origin: OriginLike) -> None:
        if self.driver_state != DriverState.ATTENTIVE or self.hfds_state != HfdsState.ENGAGED:
            return
        self.driver_state = DriverState.DISTRACTED
        self.timer.reset()
        _logger.info("Driver distracted (%s)", _name(origin))

    def _on_attention_restored(self, origin: OriginLike) -> None:
        if self.driver_state == DriverState.DISTRACTED:
            _logger.info("Driver attention restored (%s)", _name(origin))
        self.driver_state = DriverState.ATTENTIVE
        self.timer.reset()

    def _on_manual_override(self, origin: OriginLike) -> None:
        if not self.gate.authorize(Command.MANUAL_OVERRIDE, origin):
            return
        _logger.info("Driver has taken manual control.")
        self._set_state(HfdsState.OFF, "manual override")
        self.mrm_active = False
        self.timer.reset()
        self._reevaluate_eligibility()

    def _on_fault_detected(self, origin: OriginLike) -> None:
        if self.fault_active:
            return
        self.fault_active = True
        self.lane_markings_visible = False
        _logger.warning("FAULT TRIGGERED. Lane markings lost.")

    def _on_fault_cleared(self, origin: OriginLike) -> None:
        if not self.fault_active:
            return
        self.fault_active = False
        self.lane_markings_visible = True
        _logger.info("Fault cleared. Lane markings visible.")
        self._reevaluate_eligibility()

    def _abort_fault(self, origin: OriginLike) -> None:
        if not (self.hfds_state == HfdsState.ENGAGED and self.fault_active):
            return
        if not self.gate.authorize(Command.ABORT_FAULT, origin):
            return
        _logger.warning("SYSTEM FAULT: Lane Markings Lost. Relinquishing control.")
        self._set_state(HfdsState.FAULT, "fault abort")
        self.timer.level = WarningLevel.NONE
        self.mrm_active = False

    def _abort_inattention(self, origin: OriginLike) -> None:
        if not (self.hfds_state == HfdsState.ENGAGED and self.timer.abort_due):
            return
        if not self.gate.authorize(Command.ABORT_INATTENTION, origin):
            return
        _logger.warning("ABORTING HFDS: Driver Unresponsive. MRM Initiated.")
        self._set_state(HfdsState.ABORTING, "inattention abort")
        self.timer.level = WarningLevel.NONE
        self.mrm_active = True


# ============================================================
# --- Scenario Library + Runner
# ============================================================

@dataclass(frozen=True)
class ScriptStep:
    t: float
    key: str

@dataclass(frozen=True)
class ScenarioDef:
    key: str
    title: str
    steps: Tuple[str, ...]
    script: Tuple[ScriptStep, ...] = ()
    params: VehicleParameters = field(default_factory=VehicleParameters)
    duration: float = 30.0


SCENARIOS: Tuple[ScenarioDef, ...] = (
    ScenarioDef(
        key="s1",
        title="Scenario 1: Activation & Inattention",
        steps=(
            "Precondition: the HMI shows 'Ready'.",
            "Press 'a' to activate HFDS. The HMI shows 'Active' and the lane markings start moving.",
            "Press 'd' to simulate looking away ('Distracted').",
            "After 5 s a VISUAL warning appears.",
            "After 10 s an AUDIO warning appears.",
            "After 15 s a HAPTIC warning appears.",
            "After 20 s the system aborts into a Minimum Risk Maneuver (MRM).",
            "Press 'l' (look back) to clear warnings. In MRM, press 's' to take over.",
        ),
        script=(ScriptStep(1.0, "a"), ScriptStep(2.0, "d")),
        duration=26.0,
    ),
    ScenarioDef(
        key="s2",
        title="Scenario 2: System Fault",
        steps=(
            "Press 'a' to activate the system.",
            "Press 'f' to simulate a lane marking fault.",
            "The HMI shows 'FAULT' and the road lines disappear. Motion stops.",
            "Press 'r' to repair the fault.",
            "Press 's' (Manual Override) to reset the system. It returns to 'Ready'.",
        ),
        script=(ScriptStep(1.0, "a"), ScriptStep(3.0, "f"), ScriptStep(6.0, "r"), ScriptStep(8.0, "s")),
        duration=10.0,
    ),
    ScenarioDef(
        key="s3",
        title="Scenario 3: Manual Override",
        steps=(
            "Press 'a' to activate the system.",
            "At any time, press 's' (simulates grabbing the wheel).",
            "The system immediately returns to 'Ready'. Motion stops.",
            "The security log shows an ALLOW for MANUAL_OVERRIDE.",
        ),
        script=(ScriptStep(1.0, "a"), ScriptStep(4.0, "s")),
        duration=6.0,
    ),
)

def scenario_by_key(key: str) -> Optional[ScenarioDef]:
    return next((s for s in SCENARIOS if s.key == key), None)


class ScenarioRunner:
    """Plays a scenario's key script against a controller, one step per frame."""

    def __init__(self, controller: HfdsController):
        self.controller = controller
        self.scenario: Optional[ScenarioDef] = None
        self.elapsed = 0.0
        self._next = 0
        self._active = False

    def is_active(self): return self._active

    def start(self, scn: ScenarioDef):
        self.stop()
        self.scenario = scn
        self.controller.reset(scn.params)
        self.elapsed = 0.0
        self._next = 0
        self._active = True
        _logger.info("Scenario '%s' started", scn.title)

    def stop(self):
        if self._active and self.scenario:
            _logger.info("Scenario '%s' finished at %.1fs", self.scenario.title, self.elapsed)
        self._active = False

    def step(self, dt: float) -> bool:
        """Fire due script keys, tick the controller; returns whether still running."""
        if not (self._active and self.scenario):
            return False
        self.elapsed += dt
        script = self.scenario.script
        while self._next < len(script) and script[self._next].t <= self.elapsed:
            self.controller.press_key(script[self._next].key)
            self._next += 1

        self.controller.tick(dt)

        if self.elapsed >= self.scenario.duration:
            self.stop()
        return self._active

    def run_to_end(self, dt: float = 0.1) -> HfdsSnapshot:
        if dt <= 0.0:
            raise HfdsConfigError("run_to_end() needs a positive step")
        while self.step(dt):
            pass
        return self.controller.get_snapshot()
