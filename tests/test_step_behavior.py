import math

import pytest

from runtime_simulator.step_behavior import (
    RuntimeState,
    criterion_met,
    generate_signal,
    is_step_complete,
)
from utils.constants import CriterionType, StepType, TICK_SECONDS

from step_helpers import criterion, disabled_time, make_step, time_criterion

DT = TICK_SECONDS


def _tick(step, state, n=1):
    for _ in range(n):
        state.time += DT
        state.step_elapsed += DT
        generate_signal(step, state, DT)
        state.derived = state.signal * 0.12


def test_ramp_moves_at_rate():
    step = make_step(StepType.RAMP, [disabled_time()], rate=2, target=10)
    state = RuntimeState()
    _tick(step, state, 5)
    assert state.signal == pytest.approx(0.4)


def test_ramp_never_overshoots_and_snaps():
    step = make_step(StepType.RAMP, [disabled_time()], rate=2, target=10)
    state = RuntimeState()
    peak = 0.0
    for _ in range(200):
        _tick(step, state)
        peak = max(peak, state.signal)
    assert peak <= 10
    assert state.signal == 10


def test_ramp_downwards():
    step = make_step(StepType.RETURN, [disabled_time()], rate=5, target=1)
    state = RuntimeState(signal=2.0)
    _tick(step, state)
    assert state.signal == pytest.approx(1.8)
    _tick(step, state, 10)
    assert state.signal == 1


def test_hold_sets_target_immediately():
    step = make_step(StepType.HOLD, [disabled_time()], target=5, hold_time=2)
    state = RuntimeState(signal=-3.0)
    _tick(step, state)
    assert state.signal == 5


def test_cyclic_waveform_and_cycle_count():
    step = make_step(StepType.CYCLIC, [disabled_time()], rate=1, target=3, cycles=2)
    state = RuntimeState(step_elapsed=0.5)
    generate_signal(step, state, DT)
    assert state.signal == pytest.approx(0.0, abs=1e-9)
    assert state.cycles_completed == 0

    state.step_elapsed = 0.25
    generate_signal(step, state, DT)
    assert state.signal == pytest.approx(3.0)

    state.step_elapsed = 1.7
    generate_signal(step, state, DT)
    assert state.cycles_completed == 1


def test_cyclic_counts_cycles_despite_float_accumulation():
    step = make_step(StepType.CYCLIC, [disabled_time()], rate=1, target=3, cycles=2)
    state = RuntimeState()
    _tick(step, state, 25)
    assert state.cycles_completed == math.floor(1.0)
    assert is_step_complete(step, state) is False
    _tick(step, state, 25)
    assert state.cycles_completed == 2
    assert is_step_complete(step, state) is True


@pytest.mark.parametrize(
    "kind, params",
    [
        (StepType.RAMP, {"rate": 2}),
        (StepType.RAMP, {"target": 2}),
        (StepType.RETURN, {"rate": -1, "target": 4}),
        (StepType.HOLD, {}),
        (StepType.CYCLIC, {"rate": 1}),
        (StepType.RAMP, {"rate": "abc", "target": 4}),
    ],
)
def test_missing_parameters_hold_current_value(kind, params):
    step = make_step(kind, [disabled_time()], **params)
    state = RuntimeState(signal=1.25, cycles_completed=4)
    _tick(step, state, 3)
    assert state.signal == 1.25
    assert state.cycles_completed == 4


def test_stop_is_always_complete():
    assert is_step_complete(make_step(StepType.STOP), RuntimeState())


def test_enabled_criteria_are_or_combined():
    step = make_step(
        StepType.RAMP,
        [time_criterion(5), criterion(CriterionType.VOLTAGE, 1.0)],
        rate=2,
        target=10,
    )
    assert is_step_complete(step, RuntimeState(step_elapsed=0.1, signal=1.0))
    assert is_step_complete(step, RuntimeState(step_elapsed=5.0, signal=0.2))
    assert not is_step_complete(step, RuntimeState(step_elapsed=1.0, signal=0.5))


def test_enabled_criteria_disable_fallback():
    # Target reached, but the enabled Time criterion isn't met yet
    step = make_step(StepType.RAMP, [time_criterion(5)], rate=2, target=10)
    assert not is_step_complete(step, RuntimeState(signal=10.0, step_elapsed=1.0))


@pytest.mark.parametrize(
    "kind, state, met",
    [
        (CriterionType.TIME, RuntimeState(step_elapsed=2.0), True),
        (CriterionType.TIME, RuntimeState(step_elapsed=1.99), False),
        (CriterionType.VOLTAGE, RuntimeState(signal=2.0), True),
        (CriterionType.CURRENT, RuntimeState(signal=1.0), False),
        (CriterionType.TEMPERATURE, RuntimeState(signal=20.0, derived=2.4), True),
        (CriterionType.TEMPERATURE, RuntimeState(signal=20.0, derived=1.9), False),
        (CriterionType.CYCLES, RuntimeState(cycles_completed=2), True),
        (CriterionType.CYCLES, RuntimeState(cycles_completed=1), False),
    ],
)
def test_criterion_tests(kind, state, met):
    assert criterion_met(criterion(kind, 2), state) is met


def test_criterion_without_value_never_matches():
    assert not criterion_met(criterion(CriterionType.TIME, None), RuntimeState(step_elapsed=99))


def test_hold_fallback_uses_hold_time():
    step = make_step(StepType.HOLD, [disabled_time()], target=5, hold_time=2)
    state = RuntimeState()
    _tick(step, state, 49)
    assert not is_step_complete(step, state)
    _tick(step, state)
    assert state.signal == 5
    assert is_step_complete(step, state)


def test_ramp_fallback_uses_tolerance():
    step = make_step(StepType.RAMP, [disabled_time()], rate=2, target=10)
    assert is_step_complete(step, RuntimeState(signal=9.9995))
    assert not is_step_complete(step, RuntimeState(signal=9.99))
    assert is_step_complete(step, RuntimeState(signal=9.99), tolerance=0.1)


@pytest.mark.parametrize(
    "kind, params",
    [
        (StepType.RAMP, {"rate": 1}),
        (StepType.HOLD, {"target": 5}),
        (StepType.CYCLIC, {"rate": 1, "target": 3}),
    ],
)
def test_no_usable_fallback_never_completes(kind, params):
    step = make_step(kind, [], **params)
    state = RuntimeState(step_elapsed=1e6, cycles_completed=10**6)
    assert is_step_complete(step, state) is False


def test_runtime_state_zero():
    state = RuntimeState(time=3, signal=2, derived=1, step_index=4, step_elapsed=1, cycles_completed=2, active_step_id="S01")
    state.zero()
    assert state == RuntimeState()
