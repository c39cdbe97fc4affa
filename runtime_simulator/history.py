from __future__ import annotations

from collections import deque
from typing import NamedTuple, Optional, Tuple

from utils.constants import MAX_SAMPLES


class Sample(NamedTuple):
    time: float
    signal: float
    derived: float


class SampleHistory:
    """
    Fixed-capacity sliding window of recent samples, most recent last.

    Appending past capacity evicts the oldest sample. Readers get a tuple
    copy from :meth:`snapshot`, never the underlying storage.
    """

    def __init__(self, capacity: int = MAX_SAMPLES):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._samples: deque[Sample] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    def append(self, time: float, signal: float, derived: float) -> Sample:
        sample = Sample(float(time), float(signal), float(derived))
        self._samples.append(sample)
        return sample

    def latest(self) -> Optional[Sample]:
        return self._samples[-1] if self._samples else None

    def snapshot(self) -> Tuple[Sample, ...]:
        return tuple(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)
