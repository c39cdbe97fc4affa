from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from services.data_context import DataContext
from services.run_state_service import RunStateMachine
from services.sequence_data_service import SequenceDataService
from services.sequence_models import Step
from services.settings_service import SimulationSettings
from services.step_validation import validate_step
from utils.constants import RunCommand, RunState, StepType, enum_from_str
from .history import Sample, SampleHistory
from .step_behavior import RuntimeState, generate_signal, is_step_complete

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class SimulationSnapshot:
    """Read-only view of the engine state, taken after a tick or transition."""
    time: float
    signal: float
    derived: float
    active_step_id: Optional[str]
    active_step_index: int
    step_elapsed: float
    cycles_completed: int
    total_enabled_steps: int
    samples: Tuple[Sample, ...]
    run_state: RunState


class SimulationEngine(QObject):
    """
    Test sequence execution engine.

    Owns the continuous runtime state and the run state machine. Reads the
    live step list of a :class:`SequenceDataService` and keeps its enabled
    subsequence current through ``steps_changed``.

    :meth:`tick` advances the simulation by one fixed step while RUNNING and
    is a no-op otherwise. It is driven externally (``TickDriver`` for real
    time, ``run_ticks`` or a test for deterministic runs).
    """
    snapshot_published = pyqtSignal(object)
    run_state_changed = pyqtSignal(str)
    sequence_changed_during_run = pyqtSignal()

    def __init__(
        self,
        sequence: SequenceDataService,
        settings: Optional[SimulationSettings] = None,
        bus: Optional[DataContext] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._bus = bus
        self._sequence = sequence
        self._settings = settings or SimulationSettings()
        self._machine = RunStateMachine(self)
        self._state = RuntimeState()
        self._history = SampleHistory(self._settings.max_samples)
        self._enabled_steps: List[Step] = sequence.get_enabled_steps()
        self._snapshot = self._take_snapshot()

        self._sequence.steps_changed.connect(self._on_steps_changed)
        self._machine.state_changed.connect(self._on_state_changed)
        if self._bus is not None:
            self.run_state_changed.connect(
                lambda state: self._bus.run_state_changed.emit(
                    {"action": "run_state_changed", "state": state}
                )
            )

    # --- Properties -------------------------------------------------------
    @property
    def settings(self) -> SimulationSettings:
        return self._settings

    @property
    def run_state(self) -> RunState:
        return self._machine.state

    @property
    def state_machine(self) -> RunStateMachine:
        return self._machine

    @property
    def enabled_steps(self) -> List[Step]:
        return list(self._enabled_steps)

    def snapshot(self) -> SimulationSnapshot:
        """The most recently published snapshot."""
        return self._snapshot

    def can(self, command: RunCommand | str) -> bool:
        """True if ``command`` would currently be accepted, guards included."""
        if not self._machine.can(command):
            return False
        if enum_from_str(RunCommand, command) == RunCommand.START:
            return not self._invalid_enabled_steps()
        return True

    # --- Run-control commands ---------------------------------------------
    def handle_command(self, command: RunCommand | str) -> bool:
        cmd = enum_from_str(RunCommand, command)
        handlers = {
            RunCommand.START: self.start,
            RunCommand.PAUSE: self.pause,
            RunCommand.RESUME: self.resume,
            RunCommand.STOP: self.stop,
            RunCommand.ABORT: self.abort,
            RunCommand.RESET: self.reset,
        }
        if cmd is None:
            # Let the machine log and signal the rejection.
            return self._machine.apply(command)
        return handlers[cmd]()

    def start(self) -> bool:
        if not self._machine.can(RunCommand.START):
            return self._machine.apply(RunCommand.START)

        invalid = self._invalid_enabled_steps()
        if invalid:
            self._machine.reject(
                RunCommand.START,
                "invalid enabled step(s): " + ", ".join(s.id for s in invalid),
            )
            return False

        self._initialize()
        self._machine.apply(RunCommand.START)
        if not self._enabled_steps:
            logger.info("No enabled steps; stopping immediately")
            self._machine.apply(RunCommand.STOP)
        return True

    def pause(self) -> bool:
        return self._machine.apply(RunCommand.PAUSE)

    def resume(self) -> bool:
        return self._machine.apply(RunCommand.RESUME)

    def stop(self) -> bool:
        return self._machine.apply(RunCommand.STOP)

    def abort(self) -> bool:
        return self._machine.apply(RunCommand.ABORT)

    def reset(self) -> bool:
        return self._machine.apply(RunCommand.RESET)

    # --- Tick -------------------------------------------------------------
    def tick(self, dt: Optional[float] = None) -> bool:
        """
        Advance one tick. Returns True if the tick did any work.

        Returns False without touching state unless RUNNING.
        """
        if self._machine.state != RunState.RUNNING:
            return False
        if dt is None:
            dt = self._settings.tick_seconds

        state = self._state
        steps = self._enabled_steps
        step = steps[state.step_index] if 0 <= state.step_index < len(steps) else None

        if step is None:
            logger.info("Sequence exhausted at step index %d", state.step_index)
            self._machine.apply(RunCommand.STOP)
            return True
        if step.type == StepType.STOP:
            logger.info("Reached stop step %s", step.id)
            state.active_step_id = step.id
            self._machine.apply(RunCommand.STOP)
            return True

        state.active_step_id = step.id
        state.time += dt
        state.step_elapsed += dt
        generate_signal(step, state, dt)
        state.derived = state.signal * self._settings.derived_coupling

        halt = False
        if is_step_complete(step, state, self._settings.completion_tolerance):
            next_index = state.step_index + 1
            if next_index < len(steps):
                next_step = steps[next_index]
                logger.debug("Step %s complete at t=%.3f, advancing to %s", step.id, state.time, next_step.id)
                state.step_index = next_index
                state.step_elapsed = 0.0
                state.cycles_completed = 0
                state.active_step_id = next_step.id
                halt = next_step.type == StepType.STOP
            else:
                logger.debug("Last step %s complete at t=%.3f", step.id, state.time)
                halt = True

        if halt:
            # The halting tick records no sample; the transition publishes.
            self._machine.apply(RunCommand.STOP)
            return True
        self._history.append(state.time, state.signal, state.derived)
        self._publish()
        return True

    # --- Internals --------------------------------------------------------
    def _invalid_enabled_steps(self) -> List[Step]:
        # Re-validate instead of trusting the stamped flag.
        return [
            s for s in self._sequence.get_enabled_steps()
            if s.has_error or validate_step(s).has_error
        ]

    def _initialize(self) -> None:
        self._enabled_steps = self._sequence.get_enabled_steps()
        self._state.zero()
        self._history.clear()
        if self._enabled_steps:
            self._state.active_step_id = self._enabled_steps[0].id

    def _take_snapshot(self) -> SimulationSnapshot:
        s = self._state
        return SimulationSnapshot(
            time=s.time,
            signal=s.signal,
            derived=s.derived,
            active_step_id=s.active_step_id,
            active_step_index=s.step_index,
            step_elapsed=s.step_elapsed,
            cycles_completed=s.cycles_completed,
            total_enabled_steps=len(self._enabled_steps),
            samples=self._history.snapshot(),
            run_state=self._machine.state,
        )

    def _publish(self) -> None:
        self._snapshot = self._take_snapshot()
        self.snapshot_published.emit(self._snapshot)

    def _on_state_changed(self, old: str, new: str) -> None:
        if new == RunState.READY.value:
            self._state.zero()
            self._history.clear()
            self._enabled_steps = self._sequence.get_enabled_steps()
        self._publish()
        self.run_state_changed.emit(new)

    def _on_steps_changed(self) -> None:
        self._enabled_steps = self._sequence.get_enabled_steps()
        if self._machine.state in (RunState.RUNNING, RunState.PAUSED):
            # Live-bound: the edit takes effect on the next tick.
            logger.warning(
                "Sequence edited while %s; %d enabled step(s) now bound to the run",
                self._machine.state.value, len(self._enabled_steps),
            )
            self.sequence_changed_during_run.emit()
        else:
            self._publish()
