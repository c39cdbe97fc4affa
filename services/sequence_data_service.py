# services/sequence_data_service.py
# Manages the ordered list of sequence steps being edited.

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from utils.constants import ControlMode, CriterionType, StepType, enum_from_str
from .data_context import DataContext
from .sequence_models import (
    EndCriterion,
    Step,
    StepParameters,
    make_criterion,
    make_default_step,
    new_criterion_id,
)
from .step_validation import ValidationResult, stamp

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

_EDITABLE_FIELDS = ("label", "enabled", "control_mode", "parameters", "end_criteria")


def _step_id(index: int) -> str:
    return f"S{index:02d}"


class SequenceDataService(QObject):
    """
    A service that owns the sequence step list.
    It acts as the single source of truth for the steps the engine executes.

    Every create/duplicate/update re-runs the validator and stamps
    ``has_error`` on the stored step. Steps are replaced, never mutated in
    place, so a reader holding a step keeps a consistent value.
    """
    steps_changed = pyqtSignal()
    selection_changed = pyqtSignal(str)

    def __init__(self, bus: Optional[DataContext] = None):
        super().__init__()
        self._bus = bus
        self._steps: List[Step] = []
        self._validation: Dict[str, ValidationResult] = {}
        self._selected_step_id: Optional[str] = None
        # Ids are never reused, even after deletion.
        self._next_id = 1

        if self._bus is not None:
            self.steps_changed.connect(
                lambda: self._bus.steps_changed.emit({"action": "steps_changed"})
            )

    # --- Getters ---------------------------------------------------------
    def get_steps(self) -> List[Step]:
        """The live step list. Callers must not mutate it."""
        return self._steps

    def get_step(self, step_id: str) -> Optional[Step]:
        index = self._index_of(step_id)
        return self._steps[index] if index is not None else None

    def get_enabled_steps(self) -> List[Step]:
        return [s for s in self._steps if s.enabled]

    def get_validation(self, step_id: str) -> Optional[ValidationResult]:
        return self._validation.get(step_id)

    def invalid_enabled_steps(self) -> List[Step]:
        return [s for s in self._steps if s.enabled and s.has_error]

    @property
    def selected_step_id(self) -> Optional[str]:
        return self._selected_step_id

    def _index_of(self, step_id: str) -> Optional[int]:
        for i, step in enumerate(self._steps):
            if step.id == step_id:
                return i
        return None

    def _allocate_id(self) -> str:
        new_id = _step_id(self._next_id)
        self._next_id += 1
        return new_id

    # --- Internal "Perform" Methods ---------------------------------------
    def _perform_store(self, step: Step, index: Optional[int] = None) -> Step:
        """Validate ``step`` and store it at ``index`` (append when None)."""
        stamped, result = stamp(step)
        self._validation[stamped.id] = result
        existing = self._index_of(stamped.id)
        if existing is not None:
            self._steps[existing] = stamped
        elif index is None:
            self._steps.append(stamped)
        else:
            self._steps.insert(index, stamped)
        return stamped

    def _perform_remove(self, step_id: str) -> Optional[Step]:
        index = self._index_of(step_id)
        if index is None:
            return None
        self._validation.pop(step_id, None)
        return self._steps.pop(index)

    def _set_selection(self, step_id: Optional[str]) -> None:
        if step_id != self._selected_step_id:
            self._selected_step_id = step_id
            self.selection_changed.emit(step_id or "")

    # --- Step management -------------------------------------------------
    def clear_all(self) -> None:
        """Removes all steps. Ids keep counting up."""
        self._steps.clear()
        self._validation.clear()
        self._set_selection(None)
        self.steps_changed.emit()

    def add_step(self, step_type: StepType | str) -> Optional[str]:
        kind = enum_from_str(StepType, step_type)
        if kind is None:
            logger.warning("Cannot add step of unknown type %r", step_type)
            return None
        step = self._perform_store(make_default_step(kind, self._allocate_id()))
        self._set_selection(step.id)
        self.steps_changed.emit()
        return step.id

    def insert_step(self, step: Step, index: Optional[int] = None) -> str:
        """Store a fully built step under a freshly allocated id."""
        stored = self._perform_store(step.copy(id=self._allocate_id()), index)
        self.steps_changed.emit()
        return stored.id

    def duplicate_step(self, step_id: str) -> Optional[str]:
        index = self._index_of(step_id)
        if index is None:
            return None
        source = self._steps[index]
        duplicate = source.copy(id=self._allocate_id(), label=f"{source.label} copy")
        for criterion in duplicate.end_criteria:
            criterion.id = new_criterion_id()
        stored = self._perform_store(duplicate, index + 1)
        self._set_selection(stored.id)
        self.steps_changed.emit()
        return stored.id

    def delete_step(self, step_id: str) -> bool:
        removed = self._perform_remove(step_id)
        if removed is None:
            return False
        if self._selected_step_id == step_id:
            self._set_selection(self._steps[0].id if self._steps else None)
        self.steps_changed.emit()
        return True

    def select_step(self, step_id: str) -> bool:
        if self._index_of(step_id) is None:
            return False
        self._set_selection(step_id)
        return True

    def toggle_step_enabled(self, step_id: str) -> bool:
        step = self.get_step(step_id)
        if step is None:
            return False
        self._perform_store(step.copy(enabled=not step.enabled))
        self.steps_changed.emit()
        return True

    def reorder_steps(self, active_id: str, over_id: str) -> bool:
        """Move ``active_id`` to the position currently held by ``over_id``."""
        if active_id == over_id:
            return False
        from_index = self._index_of(active_id)
        to_index = self._index_of(over_id)
        if from_index is None or to_index is None:
            return False
        moved = self._steps.pop(from_index)
        self._steps.insert(to_index, moved)
        self.steps_changed.emit()
        return True

    def update_step(self, step_id: str, **changes: Any) -> Optional[ValidationResult]:
        """
        Apply field changes to a step and re-validate it.

        Only label, enabled, control_mode, parameters and end_criteria may be
        changed. ``parameters`` accepts a :class:`StepParameters` or a dict of
        parameter values; a dict replaces the step's parameters entirely.
        Returns the new validation result, or ``None`` if nothing was applied.
        """
        step = self.get_step(step_id)
        if step is None:
            return None
        rejected = [name for name in changes if name not in _EDITABLE_FIELDS]
        if rejected:
            logger.warning("Ignoring update of read-only step field(s) %s on %s", rejected, step_id)
            return None

        updated = step.copy()
        for name, value in changes.items():
            if name == "control_mode":
                value = enum_from_str(ControlMode, value) or value
            elif name == "parameters" and isinstance(value, dict):
                value = StepParameters.from_dict(value)
            elif name == "end_criteria":
                value = copy.deepcopy(list(value))
            setattr(updated, name, value)
        self._perform_store(updated)
        self.steps_changed.emit()
        return self._validation[step_id]

    # --- End criterion management -----------------------------------------
    def add_end_criterion(
        self,
        step_id: str,
        criterion_type: CriterionType | str,
        value: Any = None,
        enabled: bool = True,
    ) -> Optional[str]:
        step = self.get_step(step_id)
        kind = enum_from_str(CriterionType, criterion_type)
        if step is None or kind is None:
            return None
        criterion = make_criterion(kind, value, enabled)
        updated = step.copy()
        updated.end_criteria.append(criterion)
        self._perform_store(updated)
        self.steps_changed.emit()
        return criterion.id

    def remove_end_criterion(self, step_id: str, criterion_id: str) -> bool:
        step = self.get_step(step_id)
        if step is None:
            return False
        remaining = [c for c in step.end_criteria if c.id != criterion_id]
        if len(remaining) == len(step.end_criteria):
            return False
        self._perform_store(step.copy(end_criteria=remaining))
        self.steps_changed.emit()
        return True

    def update_end_criterion(self, step_id: str, criterion_id: str, **changes: Any) -> bool:
        """Change ``type``, ``enabled`` or ``value`` of one criterion."""
        step = self.get_step(step_id)
        if step is None:
            return False
        updated = step.copy()
        target: Optional[EndCriterion] = next(
            (c for c in updated.end_criteria if c.id == criterion_id), None
        )
        if target is None:
            return False
        for name, value in changes.items():
            if name == "type":
                value = enum_from_str(CriterionType, value) or value
            elif name not in ("enabled", "value"):
                logger.warning("Ignoring unknown end criterion field %r", name)
                continue
            setattr(target, name, value)
        self._perform_store(updated)
        self.steps_changed.emit()
        return True

    # --- Demo data -------------------------------------------------------
    def load_demo_sequence(self) -> List[str]:
        """Replace the list with a small ramp/hold/cyclic/return/stop profile."""
        self._steps.clear()
        self._validation.clear()
        ids = []
        for kind in (StepType.RAMP, StepType.HOLD, StepType.CYCLIC, StepType.RETURN, StepType.STOP):
            ids.append(self._perform_store(make_default_step(kind, self._allocate_id())).id)
        self._set_selection(ids[0])
        self.steps_changed.emit()
        return ids
