from __future__ import annotations

import dataclasses

import pytest

from hfds_core import (
    DEFAULT_ACL,
    AuditLog,
    AuthorizationGate,
    Command,
    Decision,
    Origin,
)


def _gate() -> AuthorizationGate:
    return AuthorizationGate(AuditLog(clock=lambda: 42.0))


@pytest.mark.parametrize(
    ("command", "origin"),
    [
        (Command.ENGAGE, Origin.DRIVER_ASSIST),
        (Command.MANUAL_OVERRIDE, Origin.DRIVER_INPUT),
        (Command.ABORT_FAULT, Origin.SYSTEM_MONITOR),
        (Command.ABORT_INATTENTION, Origin.DRIVER_ATTENTION_SYSTEM),
    ],
)
def test_acl_allows_listed_origin(command: Command, origin: Origin) -> None:
    gate = _gate()
    assert gate.authorize(command, origin) is True
    (rec,) = gate.audit.records()
    assert rec.decision is Decision.ALLOW
    assert rec.command == command.value
    assert rec.origin == origin.value
    assert rec.timestamp == 42.0


def test_wrong_origin_is_denied_with_one_record() -> None:
    gate = _gate()
    assert gate.authorize(Command.ENGAGE, Origin.DRIVER_INPUT) is False
    records = gate.audit.records()
    assert len(records) == 1
    assert records[0].decision is Decision.DENY
    assert records[0].describe() == "DENY: Command 'ENGAGE' from 'DriverInput' rejected."


def test_string_names_are_accepted() -> None:
    gate = _gate()
    assert gate.authorize("MANUAL_OVERRIDE", "DriverInput") is True
    assert gate.audit.records()[0].describe() == "ALLOW: Command 'MANUAL_OVERRIDE' from 'DriverInput' authorized."


def test_loose_spellings_are_recorded_canonically() -> None:
    gate = _gate()
    assert gate.authorize(" engage ", "DriverAssist") is True
    assert gate.authorize("Engage", " DriverAssist ") is True
    assert [(r.command, r.origin) for r in gate.audit.records()] == [
        ("ENGAGE", "DriverAssist"),
        ("ENGAGE", "DriverAssist"),
    ]


def test_unknown_command_fails_closed() -> None:
    gate = _gate()
    assert gate.authorize("SELF_DESTRUCT", "DriverAssist") is False
    (rec,) = gate.audit.records()
    assert rec.command == "SELF_DESTRUCT"
    assert rec.decision is Decision.DENY


def test_unknown_origin_fails_closed() -> None:
    gate = _gate()
    assert gate.authorize(Command.ENGAGE, "Intruder") is False
    assert gate.audit.records()[0].origin == "Intruder"


def test_ungated_commands_have_no_authorized_origin() -> None:
    gate = _gate()
    assert gate.authorize(Command.FAULT_DETECTED, Origin.SIMULATOR) is False
    assert Command.FAULT_DETECTED not in DEFAULT_ACL


def test_acl_is_read_only() -> None:
    with pytest.raises(TypeError):
        DEFAULT_ACL[Command.ENGAGE] = frozenset({Origin.DRIVER_INPUT})  # type: ignore[index]


def test_audit_log_is_append_only_and_ordered() -> None:
    log = AuditLog(clock=lambda: 0.0)
    log.append("ENGAGE", "DriverAssist", Decision.ALLOW)
    log.append("ENGAGE", "DriverInput", Decision.DENY)
    log.append("MANUAL_OVERRIDE", "DriverInput", Decision.ALLOW)

    assert [r.seq for r in log] == [1, 2, 3]
    assert log.last_seq() == 3
    assert len(log) == 3

    with pytest.raises(dataclasses.FrozenInstanceError):
        log.records()[0].decision = Decision.DENY  # type: ignore[misc]


def test_audit_log_consume_since_returns_only_new_records() -> None:
    log = AuditLog(clock=lambda: 0.0)
    log.append("ENGAGE", "DriverAssist", Decision.ALLOW)
    seq, first = log.consume_since(0)
    assert seq == 1 and len(first) == 1

    seq, none = log.consume_since(seq)
    assert seq == 1 and none == []

    log.append("MANUAL_OVERRIDE", "DriverInput", Decision.ALLOW)
    seq, more = log.consume_since(seq)
    assert seq == 2
    assert [r.command for r in more] == ["MANUAL_OVERRIDE"]
