import pytest
from PyQt6.QtTest import QSignalSpy

from services.run_state_service import IllegalTransitionError, RunStateMachine, TRANSITIONS
from utils.constants import RunCommand, RunState


def _machine_in(state):
    machine = RunStateMachine()
    machine._state = state
    return machine


def test_initial_state_is_ready():
    assert RunStateMachine().state == RunState.READY


@pytest.mark.parametrize("start, command, expected", [(s, c, t) for (s, c), t in TRANSITIONS.items()])
def test_legal_transitions(start, command, expected):
    machine = _machine_in(start)
    spy = QSignalSpy(machine.state_changed)
    assert machine.can(command)
    assert machine.apply(command) is True
    assert machine.state == expected
    assert len(spy) == 1
    assert spy[0][0] == start.value
    assert spy[0][1] == expected.value


ILLEGAL = [
    (s, c) for s in RunState for c in RunCommand if (s, c) not in TRANSITIONS
]


@pytest.mark.parametrize("start, command", ILLEGAL)
def test_illegal_transitions_are_rejected_no_ops(start, command):
    machine = _machine_in(start)
    changed = QSignalSpy(machine.state_changed)
    rejected = QSignalSpy(machine.command_rejected)
    assert not machine.can(command)
    assert machine.apply(command) is False
    assert machine.state == start
    assert len(changed) == 0
    assert len(rejected) == 1
    assert rejected[0][0] == command.value


def test_string_commands_accepted():
    machine = RunStateMachine()
    assert machine.apply("start") is True
    assert machine.state == RunState.RUNNING


def test_unknown_command_rejected():
    machine = RunStateMachine()
    rejected = QSignalSpy(machine.command_rejected)
    assert machine.apply("launch") is False
    assert machine.state == RunState.READY
    assert "unknown command" in rejected[0][1]


def test_guard_rejection_keeps_state():
    machine = RunStateMachine()
    rejected = QSignalSpy(machine.command_rejected)
    machine.reject(RunCommand.START, "invalid enabled step(s): S03")
    assert machine.state == RunState.READY
    assert "S03" in rejected[0][1]


def test_rejection_is_logged(caplog):
    machine = _machine_in(RunState.STOPPED)
    with caplog.at_level("WARNING", logger="services.run_state_service"):
        machine.apply(RunCommand.PAUSE)
    assert "'pause' rejected" in caplog.text


def test_illegal_transition_error_message():
    err = IllegalTransitionError(RunState.READY, RunCommand.RESUME)
    assert str(err) == "'resume' rejected: not allowed in READY"
