"""Tick drivers: a Qt timer for real time and a synchronous loop for tests."""

from __future__ import annotations

import logging
from typing import List, Optional

from PyQt6.QtCore import QObject, QTimer, Qt

from utils.constants import RunState
from .engine import SimulationEngine, SimulationSnapshot

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class TickDriver(QObject):
    """
    Drives ``engine.tick()`` from a ``QTimer`` at the configured tick rate.

    The timer runs only while the engine is RUNNING; pause/resume just
    stop and restart it. A timeout that arrives while a tick is still in
    progress is dropped and counted in :attr:`skipped_ticks`.
    """

    def __init__(self, engine: SimulationEngine, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._engine = engine
        self._busy = False
        self.skipped_ticks = 0

        self._timer = QTimer(self)
        self._timer.setTimerType(Qt.TimerType.PreciseTimer)
        self._timer.setInterval(engine.settings.tick_interval_ms)
        self._timer.timeout.connect(self._on_timeout)

        engine.run_state_changed.connect(self._on_run_state_changed)
        if engine.run_state == RunState.RUNNING:
            self._timer.start()

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()

    def _on_run_state_changed(self, state: str) -> None:
        if state == RunState.RUNNING.value:
            if not self._timer.isActive():
                self._timer.start()
        else:
            self._timer.stop()

    def _on_timeout(self) -> None:
        if self._busy:
            self.skipped_ticks += 1
            logger.debug("Tick still in progress, coalescing (%d skipped)", self.skipped_ticks)
            return
        self._busy = True
        try:
            self._engine.tick()
        finally:
            self._busy = False


def run_ticks(engine: SimulationEngine, count: int, dt: Optional[float] = None) -> List[SimulationSnapshot]:
    """
    Run up to ``count`` ticks synchronously, returning the snapshot after each.

    Stops early once the engine leaves RUNNING.
    """
    snapshots: List[SimulationSnapshot] = []
    for _ in range(count):
        if not engine.tick(dt):
            break
        snapshots.append(engine.snapshot())
    return snapshots
