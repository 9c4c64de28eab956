"""OnboardingWizard — one wizard run against one session store.

Wires the pieces together for a single session load:

    store ──start_session──▶ controller.hydrate ──▶ poller.check_on_arrival
      ▲                                                   │
      └──────── saver.save / saver.submit ◀── UI steps ◀──┘

Every transition made through the wizard (load, save, submit, go_back,
jump_to) is followed by `check_on_arrival`, which only acts on the
stripe_connect step.  A successful save invalidates the session handle and
the next `session()` read goes back to the store.

Usage:

    wizard = OnboardingWizard(OnboardingAPIClient(), token)
    wizard.handle_return_redirect(current_url)   # before or after load
    await wizard.load()
    await wizard.save(StepKey.PARK_PROFILE, {"campground": profile})
"""

from __future__ import annotations

import logging
from typing import Any

from app.schemas.steps import CampgroundProfile, DepositPolicy, StripeConnectStatus
from app.wizard.client import SessionStore
from app.wizard.controller import WizardController
from app.wizard.errors import SessionNotReadyError, StepNotReachableError
from app.wizard.poller import AccountLinkPoller
from app.wizard.registry import StepKey
from app.wizard.saver import SessionHandle, StepSaver

logger = logging.getLogger(__name__)


class OnboardingWizard:
    def __init__(self, store: SessionStore, token: str):
        self.store = store
        self.token = token
        self.controller = WizardController()
        self.saver = StepSaver(store, self.controller)
        self.poller = AccountLinkPoller(store, self.controller)
        self.handle: SessionHandle | None = None
        self.last_response: dict[str, Any] | None = None

    @property
    def state(self):
        return self.controller.state

    async def load(self) -> dict[str, Any]:
        """Open (or resume) the session for the invite token and hydrate."""
        response = await self.store.start_session(self.token)
        session = response.get("session") if isinstance(response, dict) else None
        session_id = session.get("id") if isinstance(session, dict) else None
        if not isinstance(session_id, str):
            raise SessionNotReadyError("Session store returned no session id")

        self._attach(SessionHandle(session_id=session_id, token=self.token))
        self.last_response = response
        self.controller.hydrate(response)
        await self.poller.check_on_arrival()
        return response

    async def refetch(self) -> dict[str, Any]:
        """Re-read the remote session.

        The controller is already hydrated, so this refreshes `last_response`
        (used for display) without touching local wizard state.
        """
        if self.handle is None:
            raise SessionNotReadyError()
        response = await self.store.get_session(self.handle.session_id, self.token)
        self.handle.stale = False
        self.last_response = response
        self.controller.hydrate(response)
        return response

    async def session(self) -> dict[str, Any]:
        """The remote session, re-read first if a save has invalidated it."""
        if self.handle is None:
            raise SessionNotReadyError()
        if self.handle.stale or self.last_response is None:
            return await self.refetch()
        return self.last_response

    def handle_return_redirect(self, url: str) -> str:
        return self.poller.handle_return_redirect(url)

    async def save(self, step: StepKey, payload: dict[str, Any], **kwargs) -> dict[str, Any]:
        response = await self.saver.save(step, payload, **kwargs)
        await self.poller.check_on_arrival()
        return response

    async def submit(self, step: StepKey, payload: dict[str, Any] | None = None) -> dict[str, Any] | None:
        response = await self.saver.submit(step, payload)
        await self.poller.check_on_arrival()
        return response

    async def go_back(self) -> StepKey | None:
        step = self.controller.go_back()
        await self.poller.check_on_arrival()
        return step

    async def jump_to(self, step: StepKey | str) -> StepKey:
        target = self.controller.jump_to(step)
        await self.poller.check_on_arrival()
        return target

    async def launch(self) -> dict[str, Any]:
        """Go live from review_launch and close the wizard."""
        if self.handle is None:
            raise SessionNotReadyError()
        if self.controller.current_step != StepKey.REVIEW_LAUNCH:
            raise StepNotReachableError(StepKey.REVIEW_LAUNCH.value)
        result = await self.store.launch(self.handle.session_id, self.token)
        self.controller.exit()
        logger.info(f"Launched campground {result.get('slug')}")
        return result

    def summary(self) -> dict[str, Any]:
        """What the review step shows before launch."""
        state = self.state
        profile = state.value("campground")
        stripe = state.value("stripe")
        deposit = state.value("deposit_policy")
        return {
            "campgroundName": profile.name if isinstance(profile, CampgroundProfile) else None,
            "slug": profile.slug if isinstance(profile, CampgroundProfile) else None,
            "paymentsConnected": isinstance(stripe, StripeConnectStatus) and stripe.connected,
            "inventoryPath": state.inventory_path.value,
            "siteClasses": len(state.value("site_classes") or []),
            "sites": len(state.value("sites") or []),
            "ratePeriods": len(state.value("rate_periods") or []),
            "taxRules": len(state.value("tax_rules") or []),
            "depositStrategy": deposit.strategy if isinstance(deposit, DepositPolicy) else None,
            "teamMembers": len(state.value("team_members") or []),
            "guidedFeatures": self.controller.guided_features(),
            "completedSteps": [s.value for s in state.completed_steps],
            "pendingSync": [s.value for s in state.pending_sync],
        }

    def _attach(self, handle: SessionHandle) -> None:
        self.handle = handle
        self.saver.handle = handle
        self.poller.handle = handle
