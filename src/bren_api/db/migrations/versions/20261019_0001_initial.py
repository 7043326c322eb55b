"""initial ledger schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("is_allowance_given", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("wallet_address = lower(wallet_address)", name="ck_users_wallet_lowercase"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_wallet_address", "users", ["wallet_address"], unique=True)

    op.create_table(
        "farcaster_details",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("fid", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_farcaster_details_user_id"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_farcaster_details_user_id"),
    )
    op.create_index("ix_farcaster_details_fid", "farcaster_details", ["fid"], unique=True)

    op.create_table(
        "api_credentials",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("api_key", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_credentials_api_key", "api_credentials", ["api_key"], unique=True)

    op.create_table(
        "point_events",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("event", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Float(), nullable=True),
        sa.Column("points", sa.BigInteger(), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("additional_data", JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("platform in ('ONBOARD', 'BLOCASSET')", name="ck_point_events_platform"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_point_events_user_id"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_point_events_user_created_at", "point_events", ["user_id", "created_at"]
    )

    op.create_table(
        "weekly_points",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("week_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("points_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_weekly_points_user_id"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "week_start", "platform", name="uq_weekly_points_user_week_platform"
        ),
    )

    op.create_table(
        "user_rankings",
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("points", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("tips_received", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("tips_sent", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("tips_received_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tips_sent_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_rankings_user_id"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "slack_users",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("slack_username", sa.String(length=128), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_slack_users_slack_username", "slack_users", ["slack_username"], unique=True)

    op.create_table(
        "slack_transactions",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("message_id", sa.String(length=64), nullable=False),
        sa.Column("from_user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("to_user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("channel_id", sa.String(length=64), nullable=False),
        sa.Column("channel_name", sa.String(length=200), nullable=False),
        sa.Column("text", sa.String(length=500), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_slack_transactions_amount_positive"),
        sa.ForeignKeyConstraint(
            ["from_user_id"], ["slack_users.id"], name="fk_slack_transactions_from_user_id"
        ),
        sa.ForeignKeyConstraint(
            ["to_user_id"], ["slack_users.id"], name="fk_slack_transactions_to_user_id"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("message_id", name="uq_slack_transactions_message_id"),
    )
    op.create_index(
        "ix_slack_transactions_from_user_created_at",
        "slack_transactions",
        ["from_user_id", "created_at"],
    )
    op.create_index("ix_slack_transactions_to_user_id", "slack_transactions", ["to_user_id"])

    op.create_table(
        "slack_weekly_points",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("week_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("points_given", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["slack_users.id"], name="fk_slack_weekly_points_user_id"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "week_start", name="uq_slack_weekly_points_user_week"),
    )

    op.create_table(
        "slack_user_rankings",
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("tips_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tips_sent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tips_received_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tips_sent_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["slack_users.id"], name="fk_slack_user_rankings_user_id"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "bot_replies",
        sa.Column("id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_cast_hash", sa.String(length=128), nullable=False),
        sa.Column("bot_cast_hash", sa.String(length=128), nullable=True),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "kind in ('success', 'fail', 'not_eligible', 'invite')",
            name="ck_bot_replies_kind",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_cast_hash", name="uq_bot_replies_user_cast_hash"),
    )

    op.create_table(
        "slack_rejected_messages",
        sa.Column("message_id", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "reason in ('self_tip_rejected', 'allowance_exceeded')",
            name="ck_slack_rejected_messages_reason",
        ),
        sa.PrimaryKeyConstraint("message_id"),
    )


def downgrade() -> None:
    op.drop_table("slack_rejected_messages")
    op.drop_table("bot_replies")
    op.drop_table("slack_user_rankings")
    op.drop_table("slack_weekly_points")
    op.drop_index("ix_slack_transactions_to_user_id", table_name="slack_transactions")
    op.drop_index("ix_slack_transactions_from_user_created_at", table_name="slack_transactions")
    op.drop_table("slack_transactions")
    op.drop_index("ix_slack_users_slack_username", table_name="slack_users")
    op.drop_table("slack_users")
    op.drop_table("user_rankings")
    op.drop_table("weekly_points")
    op.drop_index("ix_point_events_user_created_at", table_name="point_events")
    op.drop_table("point_events")
    op.drop_index("ix_api_credentials_api_key", table_name="api_credentials")
    op.drop_table("api_credentials")
    op.drop_index("ix_farcaster_details_fid", table_name="farcaster_details")
    op.drop_table("farcaster_details")
    op.drop_index("ix_users_wallet_address", table_name="users")
    op.drop_table("users")
