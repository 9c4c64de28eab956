"""Onboarding session API — the remote session store the wizard talks to.

Endpoints:
  POST  /api/onboarding/session/start               → {session, progress}
  GET   /api/onboarding/session/{id}?token=         → {session, progress}
  PATCH /api/onboarding/session/{id}/step           → {session, progress}
  POST  /api/onboarding/session/{id}/stripe/connect → {onboardingUrl}
  GET   /api/onboarding/session/{id}/stripe/status  → {connected}
  POST  /api/onboarding/session/{id}/launch         → {success, campgroundId, slug, redirectUrl}

Design:
  - The invitation token is the credential; it travels in the body or query.
  - Step saves are idempotent by key (body `idempotencyKey` or the
    `Idempotency-Key` header; the body wins).
  - Step payloads are opaque JSON stored under data[<step>].
"""

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.onboarding import (
    AccountLinkOut,
    AccountStatusOut,
    LaunchOut,
    SaveStepRequest,
    SessionEnvelope,
    TokenRequest,
)
from app.services import onboarding as service
from app.services.payment_gateway import PaymentGateway, get_payment_gateway

router = APIRouter()


# ── Sessions ────────────────────────────────────────────────

@router.post("/session/start", response_model=SessionEnvelope)
async def start_session(
    body: TokenRequest,
    db: AsyncSession = Depends(get_db),
):
    """Open the session for an invitation, creating it on first use."""
    return await service.start_session(db, body.token)


@router.get("/session/{session_id}", response_model=SessionEnvelope)
async def get_session(
    session_id: str,
    token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    return await service.get_session(db, session_id, token)


@router.patch("/session/{session_id}/step", response_model=SessionEnvelope)
async def save_step(
    session_id: str,
    body: SaveStepRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
):
    """Save one step's payload and mark the step completed."""
    return await service.save_step(
        db,
        session_id,
        body.token,
        body.step,
        body.payload,
        idempotency_key=body.idempotency_key or idempotency_key,
        current_step=body.current_step,
    )


@router.post("/session/{session_id}/launch", response_model=LaunchOut)
async def launch(
    session_id: str,
    body: TokenRequest,
    db: AsyncSession = Depends(get_db),
):
    """Make the campground bookable and close onboarding."""
    return await service.launch(db, session_id, body.token)


# ── Payment account link ────────────────────────────────────

@router.post("/session/{session_id}/stripe/connect", response_model=AccountLinkOut)
async def connect_payments(
    session_id: str,
    body: TokenRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    url = await service.start_account_link(db, gateway, session_id, body.token)
    return AccountLinkOut(onboarding_url=url)


@router.get("/session/{session_id}/stripe/status", response_model=AccountStatusOut)
async def payments_status(
    session_id: str,
    token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    connected = await service.account_status(db, gateway, session_id, token)
    return AccountStatusOut(connected=connected)
