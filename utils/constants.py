"""
Central constants and enums used across the simulator.

- Step, criterion and run-state identifiers are ``str`` enums so they
  behave like plain strings for Qt signals and logging.
- Provides a helper to parse members from form input strings.
"""

from enum import Enum
from typing import Optional, Type, TypeVar, Union

# --- Timing / sampling ---
TICK_RATE_HZ = 25
TICK_SECONDS = 1.0 / TICK_RATE_HZ
MAX_SAMPLES = 600

# derived = signal * DERIVED_COUPLING (placeholder coupling, not a physical model)
DERIVED_COUPLING = 0.12
# Ramp/Return fallback completion tolerance
COMPLETION_TOLERANCE = 0.001
# Absorbs float accumulation when comparing elapsed time and cycle counts
EPS = 1e-9


class StepType(str, Enum):
    """Kinds of sequence step. Fixed at creation."""
    RAMP = 'Ramp'
    HOLD = 'Hold'
    CYCLIC = 'Cyclic'
    RETURN = 'Return'
    STOP = 'Stop'


class ControlMode(str, Enum):
    VOLTAGE = 'Voltage'
    CURRENT = 'Current'
    TEMPERATURE = 'Temperature'


class CriterionType(str, Enum):
    TIME = 'Time'
    VOLTAGE = 'Voltage'
    CURRENT = 'Current'
    TEMPERATURE = 'Temperature'
    CYCLES = 'Cycles'


class RunState(str, Enum):
    """Supervisory execution phase of the active session."""
    READY = 'READY'
    RUNNING = 'RUNNING'
    PAUSED = 'PAUSED'
    STOPPED = 'STOPPED'
    ABORTED = 'ABORTED'


class RunCommand(str, Enum):
    START = 'start'
    PAUSE = 'pause'
    RESUME = 'resume'
    STOP = 'stop'
    ABORT = 'abort'
    RESET = 'reset'


# Labels given to freshly added steps
STEP_TYPE_LABELS = {
    StepType.RAMP: 'Ramp voltage',
    StepType.HOLD: 'Hold temperature',
    StepType.CYCLIC: 'Cyclic load',
    StepType.RETURN: 'Return to baseline',
    StepType.STOP: 'Stop sequence',
}

# Parameters each step type requires, in display order
REQUIRED_PARAMETERS = {
    StepType.RAMP: ('rate', 'target'),
    StepType.HOLD: ('target', 'hold_time'),
    StepType.CYCLIC: ('rate', 'target', 'cycles'),
    StepType.RETURN: ('rate', 'target'),
    StepType.STOP: (),
}


E = TypeVar('E', bound=Enum)
EnumLike = Union[Enum, str]


def enum_from_str(enum_cls: Type[E], value: Optional[EnumLike]) -> Optional[E]:
    """Parse an enum member from a string or return the member unchanged.

    Returns ``None`` if the input is falsy or doesn't match any member.
    """
    if not value:
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value))
    except ValueError:
        return None
