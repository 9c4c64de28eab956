"""Typed working state of one wizard run.

Only the reconciler (builds it) and the controller (mutates it) write to a
WizardState.  Each block of per-step data is a small tagged union:

    NotStarted   nothing persisted or the persisted value was malformed
    Draft(v)     edited locally, not yet saved
    Saved(v)     matches what the session store holds
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union

from app.wizard.registry import StepKey, first_step


class InventoryPath(str, enum.Enum):
    UNSET = "unset"
    IMPORT = "import"
    MANUAL = "manual"


class Direction(str, enum.Enum):
    FORWARD = "forward"
    BACKWARD = "backward"


class InitState(str, enum.Enum):
    NOT_STARTED = "not_started"
    HYDRATED = "hydrated"


@dataclass(frozen=True)
class NotStarted:
    pass


@dataclass(frozen=True)
class Draft:
    value: Any


@dataclass(frozen=True)
class Saved:
    value: Any


NOT_STARTED = NotStarted()

StepData = Union[NotStarted, Draft, Saved]


@dataclass
class WizardState:
    current_step: StepKey = field(default_factory=first_step)
    completed_steps: list[StepKey] = field(default_factory=list)
    inventory_path: InventoryPath = InventoryPath.UNSET
    direction: Direction = Direction.FORWARD
    init: InitState = InitState.NOT_STARTED
    finished: bool = False
    blocks: dict[str, StepData] = field(default_factory=dict)
    # Steps completed locally whose (empty) data was never sent.
    pending_sync: list[StepKey] = field(default_factory=list)

    def is_completed(self, step: StepKey) -> bool:
        return step in self.completed_steps

    def mark_completed(self, step: StepKey) -> bool:
        """Add `step` to the completed set; returns False if already there."""
        if step in self.completed_steps:
            return False
        self.completed_steps.append(step)
        return True

    def block(self, name: str) -> StepData:
        return self.blocks.get(name, NOT_STARTED)

    def value(self, name: str) -> Any:
        """The Draft or Saved value of a block, or None when not started."""
        data = self.block(name)
        if isinstance(data, (Draft, Saved)):
            return data.value
        return None
