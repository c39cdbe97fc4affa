"""
Entry point for the headless Runtime Simulator.

Usage examples:
  - python -m runtime_simulator --ticks 500
  - python -m runtime_simulator --realtime 10 --every 25
  - seq-sim --settings simulator_settings.json   (after editable install)

Runs the demo ramp/hold/cyclic/return/stop sequence and prints one status
line per reported snapshot, followed by a summary.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from PyQt6.QtCore import QCoreApplication, QTimer

from services.data_context import DataContext
from services.sequence_data_service import SequenceDataService
from services.settings_service import SettingsService
from utils.constants import RunState
from utils.format import format_duration
from .driver import TickDriver, run_ticks
from .engine import SimulationEngine, SimulationSnapshot

logger = logging.getLogger(__name__)


def format_snapshot(snap: SimulationSnapshot) -> str:
    step_no = min(snap.active_step_index + 1, snap.total_enabled_steps)
    return (
        f"{format_duration(snap.time)} t={snap.time:8.2f}s "
        f"{snap.run_state.value:<8} "
        f"step {step_no:02d}/{snap.total_enabled_steps:02d} ({snap.active_step_id or '-'}) "
        f"signal={snap.signal:9.4f} derived={snap.derived:9.4f}"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seq-sim",
        description="Run the demo test sequence through the runtime simulator.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--ticks",
        type=int,
        default=1000,
        help="Run up to N ticks synchronously (default: 1000)",
    )
    mode.add_argument(
        "--realtime",
        type=float,
        metavar="SECONDS",
        help="Drive ticks from a Qt timer for up to SECONDS of wall-clock time",
    )
    parser.add_argument(
        "--settings",
        default="simulator_settings.json",
        help="Path to the JSON settings file",
    )
    parser.add_argument(
        "--every",
        type=int,
        default=25,
        help="Print every K-th tick (default: 25)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def _run_realtime(engine: SimulationEngine, seconds: float, report) -> bool:
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    driver = TickDriver(engine)

    def _maybe_quit(state: str) -> None:
        if state != RunState.RUNNING.value:
            app.quit()

    engine.snapshot_published.connect(report)
    engine.run_state_changed.connect(_maybe_quit)
    deadline = QTimer()
    deadline.setSingleShot(True)
    deadline.timeout.connect(engine.stop)
    deadline.start(int(seconds * 1000))
    started = engine.start()
    if engine.run_state == RunState.RUNNING:
        app.exec()
    # Disarm when the run finished before the deadline
    deadline.stop()
    engine.snapshot_published.disconnect(report)
    engine.run_state_changed.disconnect(_maybe_quit)
    if driver.skipped_ticks:
        logger.info("Coalesced %d late tick(s)", driver.skipped_ticks)
    return started


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = SettingsService(args.settings).simulation_settings()
    bus = DataContext()
    sequence = SequenceDataService(bus)
    sequence.load_demo_sequence()
    engine = SimulationEngine(sequence, settings, bus)
    every = max(1, args.every)

    if args.realtime is not None:
        counter = {"n": 0}

        def _report(snap: SimulationSnapshot) -> None:
            counter["n"] += 1
            if counter["n"] % every == 0 or snap.run_state != RunState.RUNNING:
                print(format_snapshot(snap))

        if not _run_realtime(engine, args.realtime, _report):
            print("Start refused: sequence has invalid enabled steps", file=sys.stderr)
            return 1
    else:
        if not engine.start():
            print("Start refused: sequence has invalid enabled steps", file=sys.stderr)
            return 1
        for n, snap in enumerate(run_ticks(engine, args.ticks), start=1):
            if n % every == 0 or snap.run_state != RunState.RUNNING:
                print(format_snapshot(snap))

    final = engine.snapshot()
    print(
        f"Finished in {final.run_state.value} after {format_duration(final.time)} "
        f"({len(final.samples)} samples retained)"
    )
    return 0 if final.run_state == RunState.STOPPED else 2


if __name__ == "__main__":
    raise SystemExit(main())
