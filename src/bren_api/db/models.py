from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("wallet_address = lower(wallet_address)", name="ck_users_wallet_lowercase"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_allowance_given: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    farcaster_details: Mapped[FarcasterDetails | None] = relationship(back_populates="user")
    point_events: Mapped[list[PointEvent]] = relationship(
        back_populates="user", order_by="PointEvent.created_at"
    )


class FarcasterDetails(Base):
    __tablename__ = "farcaster_details"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, unique=True
    )
    fid: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="WHITELISTED")
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    user: Mapped[User] = relationship(back_populates="farcaster_details")


class ApiCredential(Base):
    __tablename__ = "api_credentials"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    api_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class PointEvent(Base):
    __tablename__ = "point_events"
    __table_args__ = (
        CheckConstraint("platform in ('ONBOARD', 'BLOCASSET')", name="ck_point_events_platform"),
        Index("ix_point_events_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    event: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    additional_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    user: Mapped[User] = relationship(back_populates="point_events")


class WeeklyPoints(Base):
    __tablename__ = "weekly_points"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "week_start", "platform", name="uq_weekly_points_user_week_platform"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    week_start: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    points_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserRankings(Base):
    __tablename__ = "user_rankings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id"),
        primary_key=True,
    )
    points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tips_received: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tips_sent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tips_received_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tips_sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class SlackUser(Base):
    __tablename__ = "slack_users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slack_username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    rankings: Mapped[SlackUserRankings | None] = relationship(back_populates="user")


class SlackTransaction(Base):
    __tablename__ = "slack_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_slack_transactions_amount_positive"),
        UniqueConstraint("message_id", name="uq_slack_transactions_message_id"),
        Index("ix_slack_transactions_from_user_created_at", "from_user_id", "created_at"),
        Index("ix_slack_transactions_to_user_id", "to_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_id: Mapped[str] = mapped_column(String(64), nullable=False)
    from_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("slack_users.id"), nullable=False
    )
    to_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("slack_users.id"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    channel_name: Mapped[str] = mapped_column(String(200), nullable=False)
    text: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class SlackWeeklyPoints(Base):
    __tablename__ = "slack_weekly_points"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_slack_weekly_points_user_week"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("slack_users.id"), nullable=False
    )
    week_start: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    points_given: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class SlackUserRankings(Base):
    __tablename__ = "slack_user_rankings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("slack_users.id"),
        primary_key=True,
    )
    tips_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tips_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tips_received_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tips_sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    user: Mapped[SlackUser] = relationship(back_populates="rankings")


class BotReply(Base):
    __tablename__ = "bot_replies"
    __table_args__ = (
        CheckConstraint(
            "kind in ('success', 'fail', 'not_eligible', 'invite')",
            name="ck_bot_replies_kind",
        ),
        UniqueConstraint("user_cast_hash", name="uq_bot_replies_user_cast_hash"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_cast_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    bot_cast_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    posted_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SlackRejectedMessage(Base):
    """A Slack message whose tip was refused; replays are not acknowledged again."""

    __tablename__ = "slack_rejected_messages"
    __table_args__ = (
        CheckConstraint(
            "reason in ('self_tip_rejected', 'allowance_exceeded')",
            name="ck_slack_rejected_messages_reason",
        ),
    )

    message_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
