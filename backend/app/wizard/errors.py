"""Errors raised by the wizard engine.

Malformed or legacy persisted data never shows up here: the guards absorb it
and the reconciler treats it as absent.
"""


class WizardError(Exception):
    """Base class for wizard engine errors."""


class SessionNotReadyError(WizardError):
    """A save was attempted before a session was loaded."""

    def __init__(self, message: str = "Onboarding session is not ready yet"):
        super().__init__(message)


class SessionStoreError(WizardError):
    """The remote session store rejected or failed a request.

    `status_code` is 0 for transport errors (connection refused, timeout).
    """

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Session store error {status_code}: {detail}")


class AccountLinkError(WizardError):
    """Starting the hosted payment-account onboarding flow failed."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StepNotReachableError(WizardError):
    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Step is not reachable yet: {step}")


class BranchNotChosenError(WizardError):
    def __init__(self, message: str = "Choose how to set up your inventory first"):
        super().__init__(message)


class WizardClosedError(WizardError):
    def __init__(self, message: str = "Onboarding wizard has already been exited"):
        super().__init__(message)
