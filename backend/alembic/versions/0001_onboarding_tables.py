"""Onboarding tables — invites, sessions, campgrounds, idempotency records.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "onboarding_invites",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("organization_id", sa.String(36)),
        sa.Column("campground_id", sa.String(36)),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("redeemed_at", sa.DateTime()),
        sa.Column("last_sent_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_onboarding_invites_email", "onboarding_invites", ["email"])
    op.create_index("ix_onboarding_invites_token", "onboarding_invites", ["token"], unique=True)

    op.create_table(
        "onboarding_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "invite_id", sa.String(36),
            sa.ForeignKey("onboarding_invites.id"), nullable=False, unique=True,
        ),
        sa.Column("organization_id", sa.String(36)),
        sa.Column("campground_id", sa.String(36)),
        sa.Column("campground_slug", sa.String(255)),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("current_step", sa.String(50)),
        sa.Column("completed_steps", sa.JSON(), server_default="[]"),
        sa.Column("data", sa.JSON(), server_default="{}"),
        sa.Column("progress", sa.JSON(), nullable=True),
        sa.Column("expires_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "campgrounds",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36)),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("email", sa.String(255)),
        sa.Column("city", sa.String(100)),
        sa.Column("state", sa.String(100)),
        sa.Column("country", sa.String(100)),
        sa.Column("timezone", sa.String(64)),
        sa.Column("is_bookable", sa.Boolean(), server_default="false"),
        sa.Column("stripe_account_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_campgrounds_slug", "campgrounds", ["slug"], unique=True)

    op.create_table(
        "idempotency_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("endpoint", sa.String(100), nullable=False),
        sa.Column("request_hash", sa.String(64)),
        sa.Column("status", sa.String(20), server_default="inflight"),
        sa.Column("response_json", sa.JSON(), nullable=True),
        sa.Column("session_id", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_idempotency_records_key", "idempotency_records", ["key"], unique=True)
    op.create_index("ix_idempotency_records_session_id", "idempotency_records", ["session_id"])


def downgrade() -> None:
    op.drop_table("idempotency_records")
    op.drop_table("campgrounds")
    op.drop_table("onboarding_sessions")
    op.drop_table("onboarding_invites")
