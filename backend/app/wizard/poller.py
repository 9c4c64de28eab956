"""Payment-account status checks for the stripe_connect step.

The hosted onboarding flow runs on the payment provider's site, so the wizard
learns about a finished connection in one of three ways:

  - the return redirect carries `?stripe=connected`
  - an automatic check on arrival at the step (at most once per load)
  - the user pressing "check again" (any number of times)

A positive answer marks the step complete and moves on if the user is looking
at it.  A negative answer or a failed check changes nothing.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.wizard.client import SessionStore
from app.wizard.controller import WizardController
from app.wizard.errors import AccountLinkError, SessionNotReadyError, WizardError
from app.wizard.registry import StepKey
from app.wizard.saver import SessionHandle

logger = logging.getLogger(__name__)

RETURN_PARAM = "stripe"
RETURN_CONNECTED_VALUES = frozenset({"connected", "success"})


class AccountLinkPoller:
    def __init__(
        self,
        store: SessionStore,
        controller: WizardController,
        handle: SessionHandle | None = None,
    ):
        self.store = store
        self.controller = controller
        self.handle = handle
        self._arrival_checked = False

    async def check_on_arrival(self) -> bool:
        """Automatic check when the user stands on stripe_connect.

        Safe to call after every transition: off the step it does nothing, and
        on it the status is fetched at most once per load.
        """
        if self._arrival_checked or self.controller.current_step != StepKey.STRIPE_CONNECT:
            return self.controller.account_connected()
        self._arrival_checked = True
        if self.controller.account_connected():
            return True
        return await self._check()

    async def check_now(self) -> bool:
        """User-triggered check."""
        return await self._check()

    async def connect(self) -> str:
        """Start hosted onboarding; returns the URL to send the user to."""
        if self.handle is None:
            raise SessionNotReadyError()
        try:
            return await self.store.connect_account(self.handle.session_id, self.handle.token)
        except AccountLinkError as e:
            logger.warning(f"Starting payment account link failed: {e.message}")
            raise

    def handle_return_redirect(self, url: str) -> str:
        """Consume `?stripe=connected` from a return URL.

        The "connected" update goes through the controller's intake queue, so
        it lands after hydration even if the session has not loaded yet.
        Returns the URL with the parameter removed.
        """
        parts = urlsplit(url)
        query = parse_qsl(parts.query, keep_blank_values=True)
        flagged = any(k == RETURN_PARAM and v in RETURN_CONNECTED_VALUES for k, v in query)
        if not flagged:
            return url

        self.controller.enqueue(lambda c: c.mark_account_connected())
        remaining = [(k, v) for k, v in query if k != RETURN_PARAM]
        return urlunsplit(parts._replace(query=urlencode(remaining)))

    async def _check(self) -> bool:
        if self.handle is None:
            return False
        try:
            connected = await self.store.account_status(self.handle.session_id, self.handle.token)
        except WizardError as e:
            logger.warning(f"Payment account status check failed: {e}")
            return False

        if connected:
            self.controller.enqueue(lambda c: c.mark_account_connected())
            return True
        return False
