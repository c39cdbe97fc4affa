import pytest
from PyQt6.QtTest import QTest

from runtime_simulator.driver import TickDriver, run_ticks
from runtime_simulator.engine import SimulationEngine
from services.settings_service import SimulationSettings
from utils.constants import RunState, StepType

from step_helpers import make_step, time_criterion


@pytest.fixture
def engine(sequence):
    sequence.insert_step(make_step(StepType.HOLD, [time_criterion(60)], target=2, hold_time=60))
    return SimulationEngine(sequence)


def test_timer_follows_run_state(engine):
    driver = TickDriver(engine)
    assert driver.is_active is False
    engine.start()
    assert driver.is_active
    engine.pause()
    assert driver.is_active is False
    engine.resume()
    assert driver.is_active
    engine.stop()
    assert driver.is_active is False


def test_driver_started_while_running_starts_timer(engine):
    engine.start()
    driver = TickDriver(engine)
    assert driver.is_active
    engine.abort()
    assert not driver.is_active


def test_timer_interval_matches_tick_rate(sequence):
    engine = SimulationEngine(sequence, SimulationSettings(tick_rate_hz=50))
    driver = TickDriver(engine)
    assert driver._timer.interval() == 20


def test_timer_drives_ticks(engine):
    driver = TickDriver(engine)
    engine.start()
    QTest.qWait(300)
    engine.pause()
    snap = engine.snapshot()
    assert len(snap.samples) >= 1
    assert snap.time == pytest.approx(len(snap.samples) / 25)

    # Paused: no further ticks arrive
    QTest.qWait(150)
    assert engine.snapshot() == snap
    assert not driver.is_active


def test_late_timeout_is_coalesced(engine):
    driver = TickDriver(engine)
    engine.start()
    driver._timer.stop()

    driver._busy = True
    driver._on_timeout()
    driver._on_timeout()
    assert driver.skipped_ticks == 2
    assert engine.snapshot().time == 0

    driver._busy = False
    driver._on_timeout()
    assert driver.skipped_ticks == 2
    assert engine.snapshot().time == pytest.approx(1 / 25)


def test_busy_flag_cleared_when_tick_raises(engine, monkeypatch):
    driver = TickDriver(engine)

    def _boom(dt=None):
        raise RuntimeError("tick failed")

    monkeypatch.setattr(engine, "tick", _boom)
    with pytest.raises(RuntimeError):
        driver._on_timeout()
    assert driver._busy is False


def test_run_ticks_stops_when_engine_leaves_running(sequence):
    sequence.insert_step(make_step(StepType.HOLD, [time_criterion(0.2)], target=1, hold_time=1))
    engine = SimulationEngine(sequence)
    engine.start()
    snaps = run_ticks(engine, 100)
    assert len(snaps) == 5
    assert snaps[-1].run_state == RunState.STOPPED
    assert run_ticks(engine, 10) == []


def test_run_ticks_custom_dt(engine):
    engine.start()
    snaps = run_ticks(engine, 4, dt=0.5)
    assert snaps[-1].time == pytest.approx(2.0)
