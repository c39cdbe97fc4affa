# services/sequence_models.py
"""Data model for sequence steps and their end criteria.

Steps are treated as values: services replace a step with an updated copy
instead of mutating it, so the object the engine reads during a tick never
changes underneath it.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field, fields, asdict, replace
from typing import Any, Dict, List, Optional

from utils.constants import (
    ControlMode,
    CriterionType,
    StepType,
    STEP_TYPE_LABELS,
)


@dataclass
class StepParameters:
    # Values may arrive as strings from form input; the validator coerces them.
    rate: Optional[Any] = None
    target: Optional[Any] = None
    hold_time: Optional[Any] = None
    cycles: Optional[Any] = None

    def is_empty(self) -> bool:
        return all(v is None for v in asdict(self).values())

    def to_dict(self) -> Dict[str, Any]:
        """Only the parameters that are set."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepParameters":
        """Build from form data. Unknown keys are dropped."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class EndCriterion:
    id: str
    type: CriterionType
    enabled: bool = True
    value: Optional[Any] = None


@dataclass
class Step:
    id: str
    type: StepType
    label: str
    enabled: bool = True
    control_mode: ControlMode = ControlMode.VOLTAGE
    parameters: StepParameters = field(default_factory=StepParameters)
    end_criteria: List[EndCriterion] = field(default_factory=list)
    # Stamped by the validator; never set by hand.
    has_error: bool = False

    def copy(self, **changes) -> "Step":
        """Deep copy with ``changes`` applied."""
        clone = replace(
            self,
            parameters=copy.deepcopy(self.parameters),
            end_criteria=copy.deepcopy(self.end_criteria),
        )
        for name, value in changes.items():
            setattr(clone, name, value)
        return clone


def new_criterion_id() -> str:
    return str(uuid.uuid4())


def make_criterion(
    criterion_type: CriterionType,
    value: Optional[Any] = None,
    enabled: bool = True,
) -> EndCriterion:
    return EndCriterion(id=new_criterion_id(), type=criterion_type, enabled=enabled, value=value)


def default_parameters(step_type: StepType) -> StepParameters:
    """Starting parameters for a freshly added step of ``step_type``."""
    if step_type == StepType.RAMP:
        return StepParameters(rate=1.0, target=10.0)
    if step_type == StepType.HOLD:
        return StepParameters(target=10.0, hold_time=5.0)
    if step_type == StepType.CYCLIC:
        return StepParameters(rate=1.0, target=5.0, cycles=3)
    if step_type == StepType.RETURN:
        return StepParameters(rate=1.0, target=1.0)
    return StepParameters()


def default_end_criteria(step_type: StepType) -> List[EndCriterion]:
    """One enabled criterion matching the natural end of ``step_type``."""
    if step_type == StepType.RAMP:
        return [make_criterion(CriterionType.VOLTAGE, 10.0)]
    if step_type == StepType.HOLD:
        return [make_criterion(CriterionType.TIME, 5.0)]
    if step_type == StepType.CYCLIC:
        return [make_criterion(CriterionType.CYCLES, 3)]
    if step_type == StepType.RETURN:
        return [make_criterion(CriterionType.TIME, 10.0)]
    return [make_criterion(CriterionType.TIME, 1.0)]


def make_default_step(step_type: StepType, step_id: str) -> Step:
    return Step(
        id=step_id,
        type=step_type,
        label=STEP_TYPE_LABELS[step_type],
        parameters=default_parameters(step_type),
        end_criteria=default_end_criteria(step_type),
    )
