# services/run_state_service.py
# Supervisory run-state machine gating whether the engine may tick.

from __future__ import annotations

import logging
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal

from utils.constants import RunCommand, RunState, enum_from_str

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class IllegalTransitionError(Exception):
    """A run-control command was issued in a state that does not permit it."""

    def __init__(self, state: RunState, command: RunCommand | str, reason: str = ""):
        self.state = state
        self.command = command
        detail = reason or f"not allowed in {state.value}"
        super().__init__(f"'{getattr(command, 'value', command)}' rejected: {detail}")


# (from, command) -> to. Anything missing is illegal.
TRANSITIONS = {
    (RunState.READY, RunCommand.START): RunState.RUNNING,
    (RunState.RUNNING, RunCommand.PAUSE): RunState.PAUSED,
    (RunState.PAUSED, RunCommand.RESUME): RunState.RUNNING,
    (RunState.RUNNING, RunCommand.STOP): RunState.STOPPED,
    (RunState.PAUSED, RunCommand.STOP): RunState.STOPPED,
    (RunState.RUNNING, RunCommand.ABORT): RunState.ABORTED,
    (RunState.PAUSED, RunCommand.ABORT): RunState.ABORTED,
    (RunState.STOPPED, RunCommand.RESET): RunState.READY,
    (RunState.ABORTED, RunCommand.RESET): RunState.READY,
}


class RunStateMachine(QObject):
    """
    Five-state supervisory controller.

    Commands go through :meth:`apply`. Illegal commands are rejected as
    no-ops: the state is left unchanged, a warning is logged and
    ``command_rejected`` is emitted. Nothing is raised to the caller.
    """
    state_changed = pyqtSignal(str, str)  # old, new
    command_rejected = pyqtSignal(str, str)  # command, reason

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._state = RunState.READY

    @property
    def state(self) -> RunState:
        return self._state

    def can(self, command: RunCommand | str) -> bool:
        """True if ``command`` is legal in the current state (guards aside)."""
        cmd = enum_from_str(RunCommand, command)
        return cmd is not None and (self._state, cmd) in TRANSITIONS

    def _next_state(self, command: RunCommand | str) -> RunState:
        cmd = enum_from_str(RunCommand, command)
        if cmd is None:
            raise IllegalTransitionError(self._state, command, "unknown command")
        try:
            return TRANSITIONS[(self._state, cmd)]
        except KeyError:
            raise IllegalTransitionError(self._state, cmd) from None

    def apply(self, command: RunCommand | str) -> bool:
        """Perform ``command``. Returns False if it was rejected."""
        try:
            new_state = self._next_state(command)
        except IllegalTransitionError as e:
            self._reject(command, e)
            return False

        old_state = self._state
        self._state = new_state
        logger.info("Run state %s -> %s", old_state.value, new_state.value)
        self.state_changed.emit(old_state.value, new_state.value)
        return True

    def reject(self, command: RunCommand | str, reason: str) -> None:
        """Reject a legal command whose guard failed."""
        self._reject(command, IllegalTransitionError(self._state, command, reason))

    def _reject(self, command: RunCommand | str, error: IllegalTransitionError) -> None:
        logger.warning("Run command %s", error)
        self.command_rejected.emit(str(getattr(command, "value", command)), str(error))
