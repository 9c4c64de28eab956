"""Onboarding session service — the remote session store behind the wizard.

Responsibilities:
  - invitations: create / resend (token = 24 random bytes, hex)
  - sessions: start (or resume) by token, read, save one step at a time
  - progress: computed over registry order; the server has no branch
    knowledge, so `nextStep` is only a hint to the client
  - campground: created on the first park_profile save with a unique slug,
    made bookable on launch
  - payment account link: Stripe Connect hosted onboarding + status

Step payloads are stored verbatim under data[<step>]; the service does not
materialise site classes, sites, or other domain records from them.
"""

import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import (
    BusinessLogicError,
    IdempotencyConflictError,
    InviteInvalidError,
    SessionNotFoundError,
)
from app.models.onboarding import Campground, OnboardingInvite, OnboardingSession
from app.schemas.onboarding import Progress, SessionEnvelope, SessionOut
from app.services import idempotency
from app.services.payment_gateway import PaymentGateway
from app.utils.cache import cached, invalidate_session, session_cache_key
from app.wizard.legacy import canonical_step_key
from app.wizard.registry import STEP_ORDER, TOTAL_STEPS, StepKey, to_step_key

logger = logging.getLogger("campreserv.onboarding")

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_LAUNCHED = "launched"

DEFAULT_CAMPGROUND_NAME = "My Campground"
DEFAULT_COUNTRY = "US"
DEFAULT_TIMEZONE = "America/New_York"


# ── Helpers ──────────────────────────────────────────────────

def _canonical_steps(values: Any) -> list[StepKey]:
    steps: list[StepKey] = []
    if not isinstance(values, list):
        return steps
    for value in values:
        key = to_step_key(canonical_step_key(value))
        if key is not None and key not in steps:
            steps.append(key)
    return steps


def build_progress(current_step: str | None, completed_steps: Any) -> Progress:
    completed = _canonical_steps(completed_steps)
    remaining = [s for s in STEP_ORDER if s not in completed]
    return Progress(
        current_step=current_step or StepKey.PARK_PROFILE.value,
        next_step=remaining[0].value if remaining else None,
        completed_steps=[s.value for s in completed],
        remaining_steps=[s.value for s in remaining],
        percentage=round(len(completed) / TOTAL_STEPS * 100),
    )


def _envelope(session: OnboardingSession) -> dict:
    envelope = SessionEnvelope(
        session=SessionOut(
            id=session.id,
            invite_id=session.invite_id,
            organization_id=session.organization_id,
            campground_id=session.campground_id,
            campground_slug=session.campground_slug,
            status=session.status,
            current_step=session.current_step,
            completed_steps=list(session.completed_steps or []),
            data=dict(session.data or {}),
            expires_at=session.expires_at,
        ),
        progress=build_progress(session.current_step, session.completed_steps),
    )
    return envelope.model_dump(mode="json", by_alias=True)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "campground"


async def unique_slug(db: AsyncSession, name: str) -> str:
    base = slugify(name)
    slug = base
    counter = 1
    while (await db.execute(select(Campground.id).where(Campground.slug == slug))).first():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _profile_fields(payload: dict) -> dict:
    """Campground fields from a park_profile payload (current or flat legacy shape)."""
    profile = payload.get("campground")
    if not isinstance(profile, dict):
        profile = payload
    name = profile.get("name") or profile.get("campgroundName") or DEFAULT_CAMPGROUND_NAME

    def text(key: str) -> str | None:
        value = profile.get(key)
        return value if isinstance(value, str) and value else None

    return {
        "name": name if isinstance(name, str) else DEFAULT_CAMPGROUND_NAME,
        "phone": text("phone"),
        "email": text("email"),
        "city": text("city"),
        "state": text("state"),
        "country": text("country") or DEFAULT_COUNTRY,
        "timezone": text("timezone") or DEFAULT_TIMEZONE,
    }


def _onboarding_url(token: str) -> str:
    return f"{settings.frontend_base_url.rstrip('/')}/onboarding/{token}"


# ── Invites ─────────────────────────────────────────────────

async def create_invite(
    db: AsyncSession,
    email: str,
    expires_in_hours: int | None = None,
    organization_id: str | None = None,
    campground_id: str | None = None,
) -> OnboardingInvite:
    hours = expires_in_hours or settings.invite_expiry_hours
    now = datetime.utcnow()
    invite = OnboardingInvite(
        email=email,
        token=secrets.token_hex(24),
        organization_id=organization_id,
        campground_id=campground_id,
        expires_at=now + timedelta(hours=hours),
        last_sent_at=now,
    )
    db.add(invite)
    await db.flush()
    logger.info(f"Created onboarding invite {invite.id} for {email}: {_onboarding_url(invite.token)}")
    return invite


async def resend_invite(db: AsyncSession, invite_id: str) -> OnboardingInvite:
    """Rotate the token and extend the expiry.  The old link stops working."""
    invite = await db.get(OnboardingInvite, invite_id)
    if invite is None:
        raise InviteInvalidError("Invite not found")
    now = datetime.utcnow()
    invite.token = secrets.token_hex(24)
    invite.expires_at = now + timedelta(hours=settings.invite_expiry_hours)
    invite.last_sent_at = now

    result = await db.execute(
        select(OnboardingSession).where(OnboardingSession.invite_id == invite.id)
    )
    session = result.scalar_one_or_none()
    if session is not None:
        session.expires_at = invite.expires_at
    await db.flush()
    logger.info(f"Resent onboarding invite {invite.id} to {invite.email}: {_onboarding_url(invite.token)}")
    return invite


async def list_sessions(db: AsyncSession) -> list[OnboardingSession]:
    result = await db.execute(
        select(OnboardingSession).order_by(OnboardingSession.created_at.desc())
    )
    return list(result.scalars().all())


async def require_invite(db: AsyncSession, token: str) -> OnboardingInvite:
    result = await db.execute(
        select(OnboardingInvite).where(OnboardingInvite.token == token)
    )
    invite = result.scalar_one_or_none()
    if invite is None or invite.expires_at < datetime.utcnow():
        raise InviteInvalidError("Onboarding invite is invalid or expired")
    return invite


async def require_session(db: AsyncSession, session_id: str, token: str) -> OnboardingSession:
    invite = await require_invite(db, token)
    session = await db.get(OnboardingSession, session_id)
    if session is None or session.invite_id != invite.id:
        raise SessionNotFoundError(session_id)
    if session.expires_at and session.expires_at < datetime.utcnow():
        raise InviteInvalidError("Onboarding session expired")
    return session


# ── Sessions ────────────────────────────────────────────────

async def start_session(db: AsyncSession, token: str) -> dict:
    """Open the session for an invite, creating it on first use."""
    invite = await require_invite(db, token)

    result = await db.execute(
        select(OnboardingSession).where(OnboardingSession.invite_id == invite.id)
    )
    session = result.scalar_one_or_none()
    if session is None:
        session = OnboardingSession(
            invite_id=invite.id,
            organization_id=invite.organization_id,
            campground_id=invite.campground_id,
            status=STATUS_IN_PROGRESS,
            current_step=StepKey.PARK_PROFILE.value,
            completed_steps=[],
            data={},
            expires_at=invite.expires_at,
        )
        db.add(session)
        logger.info(f"Started onboarding session for invite {invite.id}")

    if invite.redeemed_at is None:
        invite.redeemed_at = datetime.utcnow()
    await db.flush()
    return _envelope(session)


@cached(
    ttl=settings.session_cache_ttl,
    key_builder=lambda db, session_id, token: session_cache_key(session_id, token),
)
async def get_session(db: AsyncSession, session_id: str, token: str) -> dict:
    session = await require_session(db, session_id, token)
    return _envelope(session)


async def save_step(
    db: AsyncSession,
    session_id: str,
    token: str,
    step: str,
    payload: dict,
    idempotency_key: str | None = None,
    current_step: str | None = None,
) -> dict:
    """Store one step's payload and mark the step completed.

    With an idempotency key, a replay returns the stored response; a
    duplicate arriving while the first is still in flight gets 409.
    """
    session = await require_session(db, session_id, token)
    step_key = to_step_key(canonical_step_key(step))
    if step_key is None:
        raise BusinessLogicError(f"Unknown onboarding step: {step}", error_code="UNKNOWN_STEP")

    if idempotency_key:
        existing = await idempotency.begin(
            db,
            idempotency_key,
            f"onboarding/{step_key.value}",
            {"step": step_key.value, "payload": payload},
            session.id,
        )
        if existing is not None:
            if existing.status == idempotency.SUCCEEDED and existing.response_json:
                logger.info(f"Replaying stored response for idempotency key {idempotency_key}")
                return existing.response_json
            age = idempotency.record_age_seconds(existing)
            if age > settings.idempotency_inflight_window_seconds:
                raise IdempotencyConflictError(idempotency_key)

    try:
        response = await _apply_step(db, session, step_key, payload, current_step)
        if idempotency_key:
            await idempotency.complete(db, idempotency_key, response)
    except Exception:
        if idempotency_key:
            await db.rollback()
            await idempotency.fail(db, idempotency_key)
        raise

    await invalidate_session(session.id)
    return response


async def _apply_step(
    db: AsyncSession,
    session: OnboardingSession,
    step: StepKey,
    payload: dict,
    requested_step: str | None,
) -> dict:
    stored = dict(payload or {})

    if step == StepKey.PARK_PROFILE:
        campground = await _upsert_campground(db, session, stored)
        profile = stored.get("campground") if isinstance(stored.get("campground"), dict) else {}
        stored["campground"] = {**profile, "slug": campground.slug, "id": campground.id}

    completed = [s.value for s in _canonical_steps(session.completed_steps)]
    if step.value not in completed:
        completed.append(step.value)

    progress = build_progress(step.value, completed)
    resume = to_step_key(canonical_step_key(requested_step))

    data = dict(session.data or {})
    data[step.value] = stored
    session.data = data
    session.completed_steps = completed
    session.current_step = resume.value if resume else (progress.next_step or step.value)
    session.status = STATUS_COMPLETED if not progress.remaining_steps else STATUS_IN_PROGRESS
    session.progress = progress.model_dump(mode="json", by_alias=True)
    session.updated_at = datetime.utcnow()
    await db.flush()

    logger.info(
        f"Saved step {step.value} for session {session.id} ({progress.percentage}% complete)"
    )
    return _envelope(session)


async def _upsert_campground(
    db: AsyncSession, session: OnboardingSession, payload: dict
) -> Campground:
    """Create the campground on first profile save; later saves update it.

    The slug is fixed at creation.
    """
    fields = _profile_fields(payload)
    campground = await db.get(Campground, session.campground_id) if session.campground_id else None

    if campground is None:
        campground = Campground(
            organization_id=session.organization_id,
            slug=await unique_slug(db, fields["name"]),
            is_bookable=False,
            **fields,
        )
        db.add(campground)
        await db.flush()
        session.campground_id = campground.id
        session.campground_slug = campground.slug
        logger.info(f"Created campground {campground.id} ({campground.name}) during onboarding")
    else:
        for key, value in fields.items():
            setattr(campground, key, value)
        session.campground_slug = campground.slug
    return campground


# ── Payment account link ────────────────────────────────────

async def _require_campground(db: AsyncSession, session: OnboardingSession) -> Campground:
    campground = await db.get(Campground, session.campground_id) if session.campground_id else None
    if campground is None:
        raise BusinessLogicError(
            "Save your park profile before connecting payments",
            error_code="PROFILE_REQUIRED",
        )
    return campground


async def start_account_link(
    db: AsyncSession, gateway: PaymentGateway, session_id: str, token: str
) -> str:
    """Return a hosted onboarding URL, creating the account on first use."""
    session = await require_session(db, session_id, token)
    campground = await _require_campground(db, session)

    if not campground.stripe_account_id:
        campground.stripe_account_id = await gateway.create_account(campground.email, campground.name)
        await db.flush()
        logger.info(f"Created payment account for campground {campground.id}")

    base = settings.frontend_base_url.rstrip("/")
    return await gateway.create_account_link(
        campground.stripe_account_id,
        refresh_url=base + settings.stripe_refresh_path.format(token=token),
        return_url=base + settings.stripe_return_path.format(token=token),
    )


async def account_status(
    db: AsyncSession, gateway: PaymentGateway, session_id: str, token: str
) -> bool:
    """Ask the provider whether the account can take charges; record a yes."""
    session = await require_session(db, session_id, token)
    campground = await db.get(Campground, session.campground_id) if session.campground_id else None
    if campground is None or not campground.stripe_account_id:
        return False

    connected = await gateway.account_connected(campground.stripe_account_id)
    if connected:
        data = dict(session.data or {})
        data[StepKey.STRIPE_CONNECT.value] = {
            "stripe": {"connected": True, "accountId": campground.stripe_account_id}
        }
        session.data = data
        completed = [s.value for s in _canonical_steps(session.completed_steps)]
        if StepKey.STRIPE_CONNECT.value not in completed:
            completed.append(StepKey.STRIPE_CONNECT.value)
        session.completed_steps = completed
        await db.flush()
        await invalidate_session(session.id)
    return connected


# ── Launch ──────────────────────────────────────────────────

async def launch(db: AsyncSession, session_id: str, token: str) -> dict:
    """Make the campground bookable and close the session."""
    session = await require_session(db, session_id, token)
    completed = _canonical_steps(session.completed_steps)
    if StepKey.PARK_PROFILE not in completed:
        raise BusinessLogicError(
            "Please complete the park profile step before finishing setup",
            error_code="PROFILE_REQUIRED",
        )

    campground = await db.get(Campground, session.campground_id) if session.campground_id else None
    if campground is None:
        # Sessions from before campgrounds were created at profile save
        data = session.data or {}
        profile = data.get(StepKey.PARK_PROFILE.value) or data.get("account_profile") or {}
        campground = await _upsert_campground(db, session, profile if isinstance(profile, dict) else {})

    campground.is_bookable = True
    session.status = STATUS_LAUNCHED
    await db.flush()
    await invalidate_session(session.id)
    logger.info(f"Launched campground {campground.id} ({campground.slug})")

    return {
        "success": True,
        "campgroundId": campground.id,
        "slug": campground.slug,
        "redirectUrl": "/dashboard",
    }
