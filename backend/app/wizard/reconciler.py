"""Session reconciler — persisted session JSON → WizardState.

`reconcile` is total: any JSON value (or None) produces a usable state whose
current step and completed steps are registry members.  Malformed data is
treated as absent, never as an error.

Accepted inputs are the `{session, progress}` envelope returned by the
session store, or a bare session object.
"""

from __future__ import annotations

import logging
from typing import Any

from app.wizard import guards
from app.wizard.legacy import (
    DATA_BLOCKS,
    LEGACY_RECOMMENDATION_LOCATIONS,
    DataBlock,
    canonical_step_key,
)
from app.wizard.navigation import active_route, first_incomplete
from app.wizard.registry import StepKey, to_step_key
from app.wizard.state import (
    NOT_STARTED,
    InitState,
    InventoryPath,
    Saved,
    StepData,
    WizardState,
)

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"


def reconcile(raw: Any, prior: WizardState | None = None) -> WizardState:
    session, progress = _unwrap(raw)
    data = session.get("data")
    if not isinstance(data, dict):
        data = {}

    blocks = {block.name: _read_block(block, data) for block in DATA_BLOCKS}
    blocks["site_classes"] = _with_placeholder_ids(blocks["site_classes"])

    completed = _completed_steps(session, progress)

    if not isinstance(blocks["smart_quiz"], Saved):
        blocks["smart_quiz"] = _legacy_quiz(data, StepKey.SMART_QUIZ in completed)

    inventory = blocks["inventory"]
    if isinstance(inventory, Saved):
        inventory_path = InventoryPath(inventory.value.path)
    elif prior is not None:
        inventory_path = prior.inventory_path
    else:
        inventory_path = InventoryPath.UNSET

    state = WizardState(
        completed_steps=completed,
        inventory_path=inventory_path,
        blocks=blocks,
        init=InitState.HYDRATED,
    )
    state.current_step = _resume_step(session, progress, state)
    logger.debug(
        f"Reconciled session at {state.current_step.value} "
        f"({len(state.completed_steps)} steps completed)"
    )
    return state


def _unwrap(raw: Any) -> tuple[dict, dict]:
    if not isinstance(raw, dict):
        return {}, {}
    session = raw.get("session")
    if isinstance(session, dict):
        progress = raw.get("progress")
        return session, progress if isinstance(progress, dict) else {}
    return raw, {}


def _step_key(value: Any) -> StepKey | None:
    return to_step_key(canonical_step_key(value))


def _completed_steps(session: dict, progress: dict) -> list[StepKey]:
    reported = progress.get("completedSteps")
    if not isinstance(reported, list):
        reported = session.get("completedSteps")
    if not isinstance(reported, list):
        return []

    completed: list[StepKey] = []
    for item in reported:
        key = _step_key(item)
        if key is not None and key not in completed:
            completed.append(key)
    return completed


def _read_block(block: DataBlock, data: dict) -> StepData:
    """Parse the first populated location; a malformed value means absent."""
    for location in block.locations:
        candidate = location.read(data)
        if candidate is None:
            continue
        value = guards.parse_block(block.name, candidate)
        return Saved(value) if value is not None else NOT_STARTED
    return NOT_STARTED


def _with_placeholder_ids(data: StepData) -> StepData:
    if not isinstance(data, Saved):
        return data
    classes = [
        sc if sc.id else sc.model_copy(update={"id": f"{TEMP_ID_PREFIX}{i}"})
        for i, sc in enumerate(data.value)
    ]
    return Saved(classes)


def _legacy_quiz(data: dict, completed: bool) -> StepData:
    """Rebuild a quiz result from the flat recommendedNow/Later arrays."""
    for location in LEGACY_RECOMMENDATION_LOCATIONS:
        buckets = location.read(data)
        if buckets is None:
            continue
        value = guards.parse_block(
            "smart_quiz",
            {"recommendations": {**buckets, "skipped": []}, "completed": completed},
        )
        return Saved(value) if value is not None else NOT_STARTED
    return NOT_STARTED


def _resume_step(session: dict, progress: dict, state: WizardState) -> StepKey:
    explicit = _step_key(session.get("currentStep"))
    if explicit is not None:
        return explicit

    # The server's hint ignores branches; drop it when it points off-route.
    hint = _step_key(progress.get("nextStep"))
    if hint is not None and hint in active_route(state):
        return hint
    return first_incomplete(state)
