"""Aggregate model imports for Alembic auto-detection."""

from app.models.onboarding import (  # noqa: F401
    Campground,
    IdempotencyRecord,
    OnboardingInvite,
    OnboardingSession,
)
