"""Step save protocol.

One save = one PATCH to the session store, carrying an idempotency key so a
duplicated request (double click, network retry) is applied once.

    handle present?  ──no──▶ SessionNotReadyError
          │
    serialize payload (placeholder ids stripped)
          │
    session_store.save_step(...)  ──error──▶ log, re-raise, state untouched
          │
    handle invalidated → blocks Saved from the caller's payload
          │
    controller.complete_step(step) → successor
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any

from pydantic import BaseModel

from app.schemas.steps import CampgroundProfile, InventoryChoice
from app.wizard import guards, navigation
from app.wizard.client import SessionStore
from app.wizard.controller import WizardController
from app.wizard.errors import BranchNotChosenError, SessionNotReadyError, SessionStoreError
from app.wizard.legacy import blocks_for_step
from app.wizard.reconciler import TEMP_ID_PREFIX
from app.wizard.registry import StepKey
from app.wizard.state import InventoryPath, Saved

logger = logging.getLogger(__name__)

# Steps whose payload is optional.  Saving one with nothing in it completes
# it locally; the remote session learns about it on the next real save.
LAZY_STEPS: frozenset[StepKey] = frozenset({
    StepKey.TEAM_SETUP,
    StepKey.INTEGRATIONS,
    StepKey.MENU_SETUP,
    StepKey.FEATURE_DISCOVERY,
})


@dataclass
class SessionHandle:
    session_id: str
    token: str
    stale: bool = False

    def invalidate(self) -> None:
        self.stale = True


def serialize(value: Any) -> Any:
    """Models → JSON-ready dicts, camelCase keys.  None values are kept."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def strip_placeholder_ids(value: Any) -> Any:
    """Drop `id` keys holding `temp-<n>` placeholders anywhere in `value`."""
    if isinstance(value, dict):
        return {
            k: strip_placeholder_ids(v)
            for k, v in value.items()
            if not (k == "id" and isinstance(v, str) and v.startswith(TEMP_ID_PREFIX))
        }
    if isinstance(value, list):
        return [strip_placeholder_ids(v) for v in value]
    return value


def _is_empty(payload: Any) -> bool:
    if payload is None:
        return True
    if isinstance(payload, dict):
        return all(_is_empty(v) for v in payload.values())
    if isinstance(payload, (list, tuple, str)):
        return len(payload) == 0
    return False


class StepSaver:
    def __init__(
        self,
        store: SessionStore,
        controller: WizardController,
        handle: SessionHandle | None = None,
    ):
        self.store = store
        self.controller = controller
        self.handle = handle

    async def save(
        self,
        step: StepKey,
        payload: dict[str, Any],
        *,
        idempotency_key: str | None = None,
        advance: bool = True,
    ) -> dict[str, Any]:
        """Persist `payload` for `step`, then complete the step.

        Raises SessionNotReadyError before a session is loaded and
        SessionStoreError when the store rejects the save.  Anything the
        controller would refuse afterwards (closed wizard, no inventory path)
        is refused before the request is sent.
        """
        handle = self.handle
        if handle is None:
            raise SessionNotReadyError()
        self.controller.ensure_open()

        key = idempotency_key or uuid.uuid4().hex
        local = serialize(payload or {})
        wire = strip_placeholder_ids(local)
        self._check_inventory_choice(step, local)
        resume = self._resume_step(step, local, advance)

        try:
            response = await self.store.save_step(
                handle.session_id,
                handle.token,
                step.value,
                wire,
                key,
                current_step=resume.value,
            )
        except SessionStoreError as e:
            logger.warning(
                f"Saving step {step.value} failed: {e.detail}",
                extra={"step": step.value, "status_code": e.status_code},
            )
            raise

        handle.invalidate()
        self._apply_saved_blocks(step, local, response)
        if step in self.controller.state.pending_sync:
            self.controller.state.pending_sync.remove(step)
        self.controller.complete_step(step, advance=advance)
        return response

    async def submit(self, step: StepKey, payload: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """Save `step`, or complete it locally when it is optional and empty."""
        if step in LAZY_STEPS and _is_empty(payload):
            state = self.controller.state
            if step not in state.pending_sync:
                state.pending_sync.append(step)
            self.controller.complete_step(step)
            return None
        return await self.save(step, payload or {})

    def _resume_step(self, step: StepKey, local: dict, advance: bool) -> StepKey:
        """Where the wizard will stand once this save succeeds."""
        state = self.controller.state
        if not advance or step != state.current_step:
            return state.current_step

        projected = replace(
            state,
            completed_steps=list(state.completed_steps),
            blocks=dict(state.blocks),
        )
        for name, value in _typed_blocks(step, local):
            projected.blocks[name] = Saved(value)
            if isinstance(value, InventoryChoice):
                projected.inventory_path = InventoryPath(value.path)
        projected.mark_completed(step)
        return navigation.successor(projected, step) or step

    def _check_inventory_choice(self, step: StepKey, local: dict) -> None:
        if step != StepKey.INVENTORY_CHOICE or "inventory" not in local:
            return
        if not isinstance(guards.parse_block("inventory", local["inventory"]), InventoryChoice):
            raise BranchNotChosenError("Inventory choice must be either import or manual")

    def _apply_saved_blocks(self, step: StepKey, local: dict, response: Any) -> None:
        for name, value in _typed_blocks(step, local):
            if isinstance(value, CampgroundProfile):
                value = _merge_server_profile(value, response)
            elif isinstance(value, InventoryChoice):
                self.controller.state.inventory_path = InventoryPath(value.path)
            self.controller.set_saved(name, value)


def _typed_blocks(step: StepKey, local: dict) -> list[tuple[str, Any]]:
    """Parse the blocks owned by `step` out of a serialized payload."""
    parsed = []
    for block in blocks_for_step(step):
        if block.sub_key not in local:
            continue
        value = guards.parse_block(block.name, local[block.sub_key])
        if value is None:
            logger.debug(f"Saved payload for {block.name} did not parse; leaving block as is")
            continue
        parsed.append((block.name, value))
    return parsed


def _merge_server_profile(profile: CampgroundProfile, response: Any) -> CampgroundProfile:
    """Copy the server-generated slug (and record id) onto the saved profile."""
    session = response.get("session") if isinstance(response, dict) else None
    if not isinstance(session, dict):
        return profile

    slug = session.get("campgroundSlug")
    if not isinstance(slug, str) or not slug:
        stored = _dig(session, "data", StepKey.PARK_PROFILE.value, "campground", "slug")
        slug = stored if isinstance(stored, str) else None

    update: dict[str, Any] = {}
    if isinstance(slug, str) and slug:
        update["slug"] = slug
    campground_id = session.get("campgroundId")
    if isinstance(campground_id, str) and campground_id:
        update["id"] = campground_id
    return profile.model_copy(update=update) if update else profile


def _dig(node: Any, *path: str) -> Any:
    for part in path:
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node
