# services/step_validation.py
"""Structural, type-discriminated validation of sequence steps.

``validate_step`` never raises: it always returns a :class:`ValidationResult`
with a flag and a list of field-level issues for display. The field paths
mirror the step's attribute names (``parameters.rate``,
``end_criteria.0.value`` ...).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from utils.constants import (
    ControlMode,
    CriterionType,
    StepType,
    REQUIRED_PARAMETERS,
)
from .sequence_models import Step

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class ValidationIssue:
    field_path: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    has_error: bool
    issues: Tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.has_error

    def messages_for(self, field_path: str) -> List[str]:
        return [i.message for i in self.issues if i.field_path == field_path]


# parameter name -> (display name, plural)
_PARAMETER_NAMES = {
    'rate': ('Rate', False),
    'target': ('Target', False),
    'hold_time': ('Hold time', False),
    'cycles': ('Cycles', True),
}


def coerce_number(value: Any) -> Optional[float]:
    """Coerce form input to a float. Returns ``None`` if it isn't a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _check_parameter(name: str, raw: Any, issues: List[ValidationIssue]) -> None:
    display, plural = _PARAMETER_NAMES[name]
    path = f"parameters.{name}"
    number = coerce_number(raw)
    if number is None:
        verb = "are" if plural else "is"
        issues.append(ValidationIssue(path, f"{display} {verb} required."))
        return
    if name == 'cycles' and not (math.isfinite(number) and number.is_integer()):
        issues.append(ValidationIssue(path, "Cycles must be a whole number."))
        return
    if number <= 0:
        issues.append(ValidationIssue(path, f"{display} must be greater than 0."))


def _check_end_criteria(step: Step, issues: List[ValidationIssue]) -> None:
    criteria = list(step.end_criteria or [])
    if not criteria:
        issues.append(ValidationIssue("end_criteria", "Add at least one end criterion."))
        return
    if not any(c.enabled for c in criteria):
        issues.append(ValidationIssue("end_criteria", "Enable at least one end criterion."))

    for index, criterion in enumerate(criteria):
        if not isinstance(criterion.type, CriterionType):
            issues.append(
                ValidationIssue(f"end_criteria.{index}.type", "Unknown end criterion type.")
            )
        path = f"end_criteria.{index}.value"
        value = coerce_number(criterion.value)
        if not criterion.enabled:
            # Disabled criteria are only shape-checked.
            if criterion.value not in (None, "") and value is None:
                issues.append(ValidationIssue(path, "Value must be a number."))
            continue
        if value is None:
            issues.append(ValidationIssue(path, "Value is required."))
        elif value <= 0:
            issues.append(ValidationIssue(path, "Value must be greater than 0."))


def validate_step(step: Step) -> ValidationResult:
    """Validate ``step`` against the rules for its type."""
    issues: List[ValidationIssue] = []

    if not str(step.label or "").strip():
        issues.append(ValidationIssue("label", "Name is required."))
    if not isinstance(step.control_mode, ControlMode):
        issues.append(ValidationIssue("control_mode", "Unknown control mode."))

    _check_end_criteria(step, issues)

    if not isinstance(step.type, StepType):
        issues.append(ValidationIssue("type", "Unknown step type."))
    elif step.type == StepType.STOP:
        if not step.parameters.is_empty():
            issues.append(ValidationIssue("parameters", "Stop steps take no parameters."))
    else:
        for name in REQUIRED_PARAMETERS[step.type]:
            _check_parameter(name, getattr(step.parameters, name), issues)

    if issues:
        logger.debug("Step %s has %d validation issue(s)", step.id, len(issues))
    return ValidationResult(has_error=bool(issues), issues=tuple(issues))


def stamp(step: Step) -> Tuple[Step, ValidationResult]:
    """Return a copy of ``step`` with ``has_error`` recomputed, plus the result."""
    result = validate_step(step)
    return step.copy(has_error=result.has_error), result
