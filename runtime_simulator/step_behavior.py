"""
Per-step-type behavior for the runtime engine.

Each step kind has one signal-generation function and one fallback
completion rule, looked up from closed dispatch tables keyed by
:class:`StepType`. All functions are pure apart from updating the
:class:`RuntimeState` they are handed.

Missing parameters never raise: generation leaves the signal as it is and
the fallback rule reports "not complete".
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from services.sequence_models import EndCriterion, Step
from services.step_validation import coerce_number
from utils.constants import (
    COMPLETION_TOLERANCE,
    EPS,
    CriterionType,
    StepType,
)

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


@dataclass
class RuntimeState:
    """Continuous runtime state owned by the engine."""
    time: float = 0.0
    signal: float = 0.0
    derived: float = 0.0
    step_index: int = 0
    step_elapsed: float = 0.0
    cycles_completed: int = 0
    active_step_id: Optional[str] = None

    def zero(self) -> None:
        self.time = 0.0
        self.signal = 0.0
        self.derived = 0.0
        self.step_index = 0
        self.step_elapsed = 0.0
        self.cycles_completed = 0
        self.active_step_id = None


def _param(step: Step, name: str) -> Optional[float]:
    value = coerce_number(getattr(step.parameters, name, None))
    if value is None or not math.isfinite(value):
        logger.debug("Step %s missing usable %s, holding current value", step.id, name)
        return None
    return value


# --- Signal generation ----------------------------------------------------
def _generate_ramp(step: Step, state: RuntimeState, dt: float) -> None:
    target = _param(step, "target")
    rate = _param(step, "rate")
    if target is None or rate is None or rate <= 0:
        return
    step_size = rate * dt
    if abs(target - state.signal) <= step_size:
        state.signal = target
    elif target > state.signal:
        state.signal = min(state.signal + step_size, target)
    else:
        state.signal = max(state.signal - step_size, target)


def _generate_hold(step: Step, state: RuntimeState, dt: float) -> None:
    target = _param(step, "target")
    if target is not None:
        state.signal = target


def _generate_cyclic(step: Step, state: RuntimeState, dt: float) -> None:
    # target is the amplitude, rate the frequency in Hz
    amplitude = _param(step, "target")
    frequency = _param(step, "rate")
    if amplitude is None or frequency is None:
        return
    state.signal = amplitude * math.sin(2.0 * math.pi * frequency * state.step_elapsed)
    state.cycles_completed = int(math.floor(state.step_elapsed * frequency + EPS))


def _generate_stop(step: Step, state: RuntimeState, dt: float) -> None:
    return


GENERATORS: Dict[StepType, Callable[[Step, RuntimeState, float], None]] = {
    StepType.RAMP: _generate_ramp,
    StepType.HOLD: _generate_hold,
    StepType.CYCLIC: _generate_cyclic,
    StepType.RETURN: _generate_ramp,
    StepType.STOP: _generate_stop,
}


def generate_signal(step: Step, state: RuntimeState, dt: float) -> None:
    """Update ``state.signal`` (and cycle count) for one tick of ``step``."""
    generator = GENERATORS.get(step.type)
    if generator is not None:
        generator(step, state, dt)


# --- Completion -----------------------------------------------------------
def criterion_met(criterion: EndCriterion, state: RuntimeState) -> bool:
    value = coerce_number(criterion.value)
    if value is None:
        return False
    if criterion.type == CriterionType.TIME:
        return state.step_elapsed + EPS >= value
    if criterion.type in (CriterionType.VOLTAGE, CriterionType.CURRENT):
        return state.signal >= value
    if criterion.type == CriterionType.TEMPERATURE:
        return state.derived >= value
    if criterion.type == CriterionType.CYCLES:
        return state.cycles_completed + EPS >= value
    return False


def _fallback_hold(step: Step, state: RuntimeState, tolerance: float) -> bool:
    hold_time = _param(step, "hold_time")
    return hold_time is not None and state.step_elapsed + EPS >= hold_time


def _fallback_cyclic(step: Step, state: RuntimeState, tolerance: float) -> bool:
    cycles = _param(step, "cycles")
    return cycles is not None and state.cycles_completed + EPS >= cycles


def _fallback_ramp(step: Step, state: RuntimeState, tolerance: float) -> bool:
    target = _param(step, "target")
    return target is not None and abs(state.signal - target) < tolerance


def _fallback_stop(step: Step, state: RuntimeState, tolerance: float) -> bool:
    return True


FALLBACKS: Dict[StepType, Callable[[Step, RuntimeState, float], bool]] = {
    StepType.RAMP: _fallback_ramp,
    StepType.HOLD: _fallback_hold,
    StepType.CYCLIC: _fallback_cyclic,
    StepType.RETURN: _fallback_ramp,
    StepType.STOP: _fallback_stop,
}


def is_step_complete(
    step: Step,
    state: RuntimeState,
    tolerance: float = COMPLETION_TOLERANCE,
) -> bool:
    """
    Completion test, evaluated after the signal update of the same tick.

    - Stop steps are always complete.
    - Otherwise any enabled end criterion that is met completes the step.
    - With no enabled criteria the type's fallback rule decides.
    """
    if step.type == StepType.STOP:
        return True
    enabled = [c for c in step.end_criteria if c.enabled]
    if enabled:
        return any(criterion_met(c, state) for c in enabled)
    fallback = FALLBACKS.get(step.type)
    return fallback is not None and fallback(step, state, tolerance)
