"""Management CLI for onboarding invitations.

Usage:
    python -m app.cli create-invite <email> [hours]   # New invite, prints the link
    python -m app.cli resend-invite <invite_id>       # Rotate token, extend expiry
    python -m app.cli list-sessions                   # Show onboarding sessions
"""

import asyncio
import sys

from app.config import settings
from app.database import async_session
from app.middleware.exceptions import InviteInvalidError
from app.models.onboarding import OnboardingInvite
from app.schemas.onboarding import InviteOut
from app.services import onboarding as service


def invite_out(invite: OnboardingInvite) -> InviteOut:
    return InviteOut(
        id=invite.id,
        email=invite.email,
        token=invite.token,
        expires_at=invite.expires_at,
        onboarding_url=f"{settings.frontend_base_url.rstrip('/')}/onboarding/{invite.token}",
    )


def _print_invite(invite: OnboardingInvite) -> None:
    out = invite_out(invite)
    print(f"  Invite:  {out.id}")
    print(f"  Email:   {out.email}")
    print(f"  Expires: {out.expires_at.isoformat()}")
    print(f"  Link:    {out.onboarding_url}")


async def create_invite(email: str, hours: int | None = None):
    async with async_session() as db:
        invite = await service.create_invite(db, email, expires_in_hours=hours)
        await db.commit()
    _print_invite(invite)


async def resend_invite(invite_id: str):
    async with async_session() as db:
        try:
            invite = await service.resend_invite(db, invite_id)
        except InviteInvalidError as e:
            print(f"  FAILED: {e.message}")
            return
        await db.commit()
    _print_invite(invite)


async def list_sessions():
    async with async_session() as db:
        sessions = await service.list_sessions(db)
    for s in sessions:
        progress = service.build_progress(s.current_step, s.completed_steps)
        print(f"  {s.id}  {s.status:<12} {progress.percentage:>3}%  {s.current_step or '-'}  {s.campground_slug or ''}")
    print(f"\n{len(sessions)} session(s)")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "create-invite" and len(sys.argv) > 2:
        hours = int(sys.argv[3]) if len(sys.argv) > 3 else None
        asyncio.run(create_invite(sys.argv[2], hours))
    elif cmd == "resend-invite" and len(sys.argv) > 2:
        asyncio.run(resend_invite(sys.argv[2]))
    elif cmd == "list-sessions":
        asyncio.run(list_sessions())
    else:
        print("Usage: python -m app.cli [create-invite <email> [hours]|resend-invite <id>|list-sessions]")
