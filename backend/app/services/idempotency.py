"""Idempotency records for step saves.

A client sends the same key with every retry of one logical save.  The first
request claims the key (status "inflight"); when it finishes the response is
stored ("succeeded") or the claim released ("failed").

    begin()    → None when the caller now owns the key,
                 or the existing record when someone else does
    complete() → store the response for replay
    fail()     → release the key so a retry can proceed

Records are committed immediately so a concurrent request on another
connection sees the claim.
"""

import hashlib
import json
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.onboarding import IdempotencyRecord

logger = logging.getLogger(__name__)

INFLIGHT = "inflight"
SUCCEEDED = "succeeded"
FAILED = "failed"


def request_hash(body: dict) -> str:
    return hashlib.sha256(
        json.dumps(body, sort_keys=True, default=str).encode()
    ).hexdigest()


def record_age_seconds(record: IdempotencyRecord, now: datetime | None = None) -> float:
    now = now or datetime.utcnow()
    return (now - record.created_at).total_seconds()


async def _get(db: AsyncSession, key: str) -> IdempotencyRecord | None:
    result = await db.execute(
        select(IdempotencyRecord).where(IdempotencyRecord.key == key)
    )
    return result.scalar_one_or_none()


async def begin(
    db: AsyncSession,
    key: str,
    endpoint: str,
    body: dict,
    session_id: str | None = None,
) -> IdempotencyRecord | None:
    """Claim `key` for this request."""
    now = datetime.utcnow()
    record = await _get(db, key)

    if record is None:
        db.add(IdempotencyRecord(
            key=key,
            endpoint=endpoint,
            request_hash=request_hash(body),
            status=INFLIGHT,
            session_id=session_id,
            created_at=now,
        ))
        try:
            await db.commit()
        except IntegrityError:
            # Lost the race to a concurrent request with the same key
            await db.rollback()
            return await _get(db, key)
        return None

    if record.status == SUCCEEDED:
        return record
    if record.status == INFLIGHT and record_age_seconds(record, now) < settings.idempotency_stale_seconds:
        return record

    if record.status == INFLIGHT:
        logger.info(f"Reclaiming stale idempotency key {key} ({record.endpoint})")
    record.status = INFLIGHT
    record.request_hash = request_hash(body)
    record.response_json = None
    record.created_at = now
    await db.commit()
    return None


async def complete(db: AsyncSession, key: str, response: dict) -> None:
    record = await _get(db, key)
    if record is None:
        return
    record.status = SUCCEEDED
    record.response_json = response
    await db.flush()


async def fail(db: AsyncSession, key: str) -> None:
    record = await _get(db, key)
    if record is None:
        return
    record.status = FAILED
    await db.commit()
