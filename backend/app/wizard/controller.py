"""Wizard controller — the step-sequencing state machine.

Owns one WizardState.  All transitions happen here:

  advance / complete_step   forward along the active route
  go_back                   backward along the active route
  jump_to                   to a completed step, the current step, or the
                            first incomplete step of the active route
  skip_data_import          data_import → manual sub-flow
  exit                      one-way exit from review_launch

Hydration is a latch with an ordered intake queue: updates submitted before
the session is reconciled (e.g. the payment-account return redirect) wait
and are applied after it, in submission order.  Once hydrated, later
hydrations are ignored so a background refetch never clobbers local edits.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from app.schemas.steps import (
    DataImportSummary,
    GuidedSetupProgress,
    InventoryChoice,
    StripeConnectStatus,
)
from app.wizard import navigation
from app.wizard.errors import StepNotReachableError, WizardClosedError
from app.wizard.legacy import canonical_step_key
from app.wizard.reconciler import reconcile
from app.wizard.registry import StepKey, ordinal, to_step_key
from app.wizard.state import (
    Direction,
    Draft,
    InitState,
    InventoryPath,
    Saved,
    WizardState,
)

logger = logging.getLogger(__name__)

Update = Callable[["WizardController"], None]


class WizardController:
    def __init__(self, state: WizardState | None = None):
        self.state = state or WizardState()
        self._intake: list[Update] = []

    # ── Read-only views ──────────────────────────────────────

    @property
    def current_step(self) -> StepKey:
        return self.state.current_step

    @property
    def completed_steps(self) -> list[StepKey]:
        return list(self.state.completed_steps)

    @property
    def hydrated(self) -> bool:
        return self.state.init == InitState.HYDRATED

    def active_route(self) -> tuple[StepKey, ...]:
        return navigation.active_route(self.state)

    def first_incomplete(self) -> StepKey:
        return navigation.first_incomplete(self.state)

    def reachable_steps(self) -> set[StepKey]:
        reachable = set(self.state.completed_steps)
        reachable.add(self.state.current_step)
        reachable.add(self.first_incomplete())
        return reachable

    # ── Hydration & intake ───────────────────────────────────

    def hydrate(self, raw: Any) -> bool:
        """Reconcile a persisted session into the state, once.

        Returns False when the controller was already hydrated.
        """
        if self.hydrated:
            logger.debug("Ignoring session refetch: controller already hydrated")
            return False

        self.state = reconcile(raw, prior=self.state)
        pending, self._intake = self._intake, []
        for update in pending:
            update(self)
        return True

    def enqueue(self, update: Update) -> None:
        """Apply `update` now if hydrated, otherwise after hydration."""
        if self.hydrated:
            update(self)
        else:
            self._intake.append(update)

    # ── Transitions ──────────────────────────────────────────

    def advance(self) -> StepKey:
        """Complete the current step and move to its successor."""
        self.ensure_open()
        step = self.state.current_step
        target = navigation.successor(self.state, step)
        self.state.mark_completed(step)
        if target is None:
            return step
        self._move(target, Direction.FORWARD)
        return target

    def complete_step(self, step: StepKey, advance: bool = True) -> StepKey:
        """Mark `step` completed; advance when it is the current step."""
        self.ensure_open()
        if advance and step == self.state.current_step:
            return self.advance()
        self.state.mark_completed(step)
        return self.state.current_step

    def go_back(self) -> StepKey | None:
        self.ensure_open()
        target = navigation.predecessor(self.state, self.state.current_step)
        if target is None:
            return None
        self._move(target, Direction.BACKWARD)
        return target

    def jump_to(self, step: StepKey | str) -> StepKey:
        self.ensure_open()
        target = to_step_key(canonical_step_key(step))
        if target is None or target not in self.reachable_steps():
            raise StepNotReachableError(str(getattr(step, "value", step)))
        current = self.state.current_step
        self._move(
            target,
            Direction.BACKWARD if ordinal(target) < ordinal(current) else Direction.FORWARD,
        )
        return target

    def exit(self) -> None:
        """Leave the wizard from review_launch.  There is no way back in."""
        self.ensure_open()
        if self.state.current_step != StepKey.REVIEW_LAUNCH:
            raise StepNotReachableError("exit")
        self.state.mark_completed(StepKey.REVIEW_LAUNCH)
        self.state.finished = True
        logger.info("Onboarding wizard exited from review")

    # ── Branch 1: inventory ──────────────────────────────────

    def choose_inventory_path(self, path: InventoryPath | str) -> None:
        self.ensure_open()
        path = InventoryPath(path)
        self.state.inventory_path = path
        if path != InventoryPath.UNSET:
            self.set_draft("inventory", InventoryChoice(path=path.value))

    def skip_data_import(self) -> StepKey:
        """Abandon the import and build inventory by hand instead.

        Only valid while standing on data_import.
        """
        self.ensure_open()
        if self.state.current_step != StepKey.DATA_IMPORT:
            raise StepNotReachableError(StepKey.SITE_CLASSES.value)
        self.state.inventory_path = InventoryPath.IMPORT
        self.set_draft("data_import", DataImportSummary(skipped=True))
        self.state.mark_completed(StepKey.DATA_IMPORT)
        self._move(StepKey.SITE_CLASSES, Direction.FORWARD)
        return StepKey.SITE_CLASSES

    # ── Branch 2: guided setup ───────────────────────────────

    def guided_features(self) -> list[str]:
        return navigation.setup_now_features(self.state)

    def complete_feature(self, feature: str) -> bool:
        return self._record_feature(feature, skipped=False)

    def defer_feature(self, feature: str) -> bool:
        return self._record_feature(feature, skipped=True)

    def skip_remaining_features(self) -> bool:
        self.ensure_open()
        progress = self._guided_progress()
        handled = set(progress.completed_features) | set(progress.skipped_features)
        remaining = [f for f in self.guided_features() if f not in handled]
        progress = progress.model_copy(update={
            "skipped_features": progress.skipped_features + remaining,
            "current_feature_index": len(self.guided_features()),
        })
        self.set_draft("guided_setup", progress)
        return self._finish_guided_setup()

    def _record_feature(self, feature: str, skipped: bool) -> bool:
        self.ensure_open()
        progress = self._guided_progress()
        completed = list(progress.completed_features)
        deferred = list(progress.skipped_features)
        bucket = deferred if skipped else completed
        if feature not in bucket:
            bucket.append(feature)
        progress = progress.model_copy(update={
            "completed_features": completed,
            "skipped_features": deferred,
            "current_feature_index": len(set(completed) | set(deferred)),
        })
        self.set_draft("guided_setup", progress)

        handled = set(completed) | set(deferred)
        if all(f in handled for f in self.guided_features()):
            return self._finish_guided_setup()
        return False

    def _guided_progress(self) -> GuidedSetupProgress:
        progress = self.state.value("guided_setup")
        if isinstance(progress, GuidedSetupProgress):
            return progress
        return GuidedSetupProgress()

    def _finish_guided_setup(self) -> bool:
        if self.state.current_step == StepKey.GUIDED_SETUP:
            self.advance()
        else:
            self.state.mark_completed(StepKey.GUIDED_SETUP)
        return True

    # ── External status ──────────────────────────────────────

    def mark_account_connected(self, account_id: str | None = None) -> None:
        """Record a connected payment account; advance if it is being viewed."""
        existing = self.state.value("stripe")
        if account_id is None and isinstance(existing, StripeConnectStatus):
            account_id = existing.account_id
        self.set_saved("stripe", StripeConnectStatus(connected=True, account_id=account_id))

        if self.state.finished:
            return
        if self.state.current_step == StepKey.STRIPE_CONNECT:
            self.advance()
        else:
            self.state.mark_completed(StepKey.STRIPE_CONNECT)

    def account_connected(self) -> bool:
        status = self.state.value("stripe")
        return isinstance(status, StripeConnectStatus) and status.connected

    # ── Block helpers ────────────────────────────────────────

    def set_draft(self, block: str, value: Any) -> None:
        self.state.blocks[block] = Draft(value)

    def set_saved(self, block: str, value: Any) -> None:
        self.state.blocks[block] = Saved(value)

    # ── Internals ────────────────────────────────────────────

    def _move(self, target: StepKey, direction: Direction) -> None:
        logger.debug(f"Wizard {direction.value}: {self.state.current_step.value} → {target.value}")
        self.state.direction = direction
        self.state.current_step = target

    def ensure_open(self) -> None:
        if self.state.finished:
            raise WizardClosedError()

