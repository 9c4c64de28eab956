"""Pydantic schemas for the onboarding session API.

Wire format is camelCase (the web client's envelope); Python names are
snake_case.  Step payloads are passed through as opaque JSON.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ────────────────────────────────────────────────

class TokenRequest(CamelModel):
    token: str = Field(..., min_length=1)


class SaveStepRequest(CamelModel):
    token: str = Field(..., min_length=1)
    step: str
    payload: dict[str, Any] = {}
    idempotency_key: str | None = Field(default=None, max_length=128)
    # Where the client will resume; it knows which branches were taken.
    current_step: str | None = None


# ── Responses ───────────────────────────────────────────────

class Progress(CamelModel):
    current_step: str | None = None
    next_step: str | None = None
    completed_steps: list[str] = []
    remaining_steps: list[str] = []
    percentage: int = 0


class SessionOut(CamelModel):
    id: str
    invite_id: str
    organization_id: str | None = None
    campground_id: str | None = None
    campground_slug: str | None = None
    status: str
    current_step: str | None = None
    completed_steps: list[str] = []
    data: dict[str, Any] = {}
    expires_at: datetime | None = None


class SessionEnvelope(CamelModel):
    session: SessionOut
    progress: Progress


class AccountLinkOut(CamelModel):
    onboarding_url: str


class AccountStatusOut(CamelModel):
    connected: bool


class LaunchOut(CamelModel):
    success: bool
    campground_id: str
    slug: str
    redirect_url: str


# ── CLI / admin ─────────────────────────────────────────────

class InviteOut(CamelModel):
    id: str
    email: str
    token: str
    expires_at: datetime
    onboarding_url: str
