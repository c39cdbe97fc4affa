import pytest

from runtime_simulator.history import Sample, SampleHistory


def test_append_and_snapshot_order():
    history = SampleHistory(capacity=5)
    for i in range(3):
        history.append(i * 0.04, float(i), i * 0.12)
    snap = history.snapshot()
    assert isinstance(snap, tuple)
    assert [s.signal for s in snap] == [0.0, 1.0, 2.0]
    assert history.latest() == Sample(0.08, 2.0, 0.24)


def test_oldest_evicted_past_capacity():
    history = SampleHistory(capacity=600)
    for i in range(750):
        history.append(i, i, i)
    snap = history.snapshot()
    assert len(snap) == 600
    assert snap[0].time == 150
    assert snap[-1].time == 749
    assert [s.time for s in snap] == sorted(s.time for s in snap)


def test_snapshot_is_detached():
    history = SampleHistory(capacity=3)
    history.append(1, 1, 1)
    snap = history.snapshot()
    history.append(2, 2, 2)
    assert len(snap) == 1
    assert len(history) == 2


def test_clear():
    history = SampleHistory()
    history.append(1, 1, 1)
    history.clear()
    assert len(history) == 0
    assert history.latest() is None
    assert history.capacity == 600


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        SampleHistory(capacity=0)
