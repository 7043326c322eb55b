from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bren_api.db.models import (
    SlackTransaction,
    SlackUser,
    SlackUserRankings,
    SlackWeeklyPoints,
)
from bren_api.domain.allowance import WEEKLY_ALLOWANCE, lock_sender, remaining_allowance
from bren_api.domain.idempotency import has_been_processed, record_rejection
from bren_api.domain.tip_commands import is_bot_mentioned, parse_tip_command
from bren_api.observability import metrics
from bren_api.outbound.slack import SlackClient
from bren_api.time import UtcNow, WeekKey

logger = logging.getLogger(__name__)

SELF_TIP_MESSAGE = "Sorry, you cannot tip yourself."
DEFAULT_CHANNEL_NAME = "Slack Channel"


class TipState(StrEnum):
    RECEIVED = "received"
    DEDUPE_CHECKED = "dedupe_checked"
    PARSED = "parsed"
    ALLOWANCE_CHECKED = "allowance_checked"
    COMMITTED = "committed"
    ACKNOWLEDGED = "acknowledged"
    DUPLICATE = "duplicate"
    PARSE_FAILED = "parse_failed"
    SELF_TIP_REJECTED = "self_tip_rejected"
    ALLOWANCE_EXCEEDED = "allowance_exceeded"
    PERSISTENCE_ERROR = "persistence_error"


@dataclass(frozen=True)
class SlackTip:
    from_username: str
    from_user_id: str
    to_username: str
    amount: int
    message_id: str
    channel_id: str
    channel_name: str


@dataclass(frozen=True)
class TipOutcome:
    state: TipState
    remaining_allowance: int | None = None
    transaction_id: uuid.UUID | None = None


def insufficient_allowance_message(remaining: int) -> str:
    return f"You have insufficient allowance. Your remaining allowance: {remaining}"


def _finish(outcome: TipOutcome, tip: SlackTip) -> TipOutcome:
    metrics.tip_outcome_total.labels(state=outcome.state.value).inc()
    logger.info(
        "slack_tip_outcome",
        extra={
            "tip_state": outcome.state.value,
            "message_id": tip.message_id,
            "from_username": tip.from_username,
            "to_username": tip.to_username,
            "amount": tip.amount,
            "remaining_allowance": outcome.remaining_allowance,
        },
    )
    return outcome


async def _reject(
    db: AsyncSession, tip: SlackTip, outcome: TipOutcome, *, now: dt.datetime
) -> TipOutcome:
    recorded = await record_rejection(db, tip.message_id, outcome.state.value, now=now)
    await db.commit()
    if not recorded:
        return _finish(TipOutcome(state=TipState.DUPLICATE), tip)
    return _finish(outcome, tip)


async def upsert_slack_user(db: AsyncSession, username: str, *, now: dt.datetime) -> uuid.UUID:
    stmt = (
        insert(SlackUser)
        .values(id=uuid.uuid4(), slack_username=username, display_name=username, created_at=now)
        .on_conflict_do_nothing(index_elements=[SlackUser.slack_username])
        .returning(SlackUser.id)
    )
    inserted_id = (await db.execute(stmt)).scalar_one_or_none()
    if inserted_id is not None:
        return inserted_id
    existing_id = await db.scalar(select(SlackUser.id).where(SlackUser.slack_username == username))
    if existing_id is None:
        raise RuntimeError("Slack user upsert failed without returning an existing user.")
    return existing_id


async def _increment_weekly_points(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    week_start: dt.datetime,
    given: int,
    received: int,
    now: dt.datetime,
) -> None:
    stmt = insert(SlackWeeklyPoints).values(
        id=uuid.uuid4(),
        user_id=user_id,
        week_start=week_start,
        points_given=given,
        points_received=received,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_slack_weekly_points_user_week",
        set_={
            "points_given": SlackWeeklyPoints.points_given + stmt.excluded.points_given,
            "points_received": SlackWeeklyPoints.points_received + stmt.excluded.points_received,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)


async def _increment_rankings(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    sent: int,
    received: int,
    now: dt.datetime,
) -> None:
    stmt = insert(SlackUserRankings).values(
        user_id=user_id,
        tips_sent=sent,
        tips_sent_count=1 if sent else 0,
        tips_received=received,
        tips_received_count=1 if received else 0,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[SlackUserRankings.user_id],
        set_={
            "tips_sent": SlackUserRankings.tips_sent + stmt.excluded.tips_sent,
            "tips_sent_count": SlackUserRankings.tips_sent_count + stmt.excluded.tips_sent_count,
            "tips_received": SlackUserRankings.tips_received + stmt.excluded.tips_received,
            "tips_received_count": SlackUserRankings.tips_received_count
            + stmt.excluded.tips_received_count,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)


async def process_slack_tip(
    db: AsyncSession,
    tip: SlackTip,
    *,
    now: dt.datetime,
    week_key: WeekKey,
    weekly_allowance: int = WEEKLY_ALLOWANCE,
) -> TipOutcome:
    """Validate and commit one tip as a single unit of work.

    The users, the transaction row and every aggregate increment commit
    together or not at all. Acknowledgements are left to the caller.
    """
    if tip.amount <= 0:
        raise ValueError("Tip amount must be positive.")

    if await has_been_processed(db, tip.message_id):
        return _finish(TipOutcome(state=TipState.DUPLICATE), tip)

    week_start = week_key(now)
    try:
        if tip.from_username == tip.to_username:
            return await _reject(db, tip, TipOutcome(state=TipState.SELF_TIP_REJECTED), now=now)

        from_id = await upsert_slack_user(db, tip.from_username, now=now)
        to_id = await upsert_slack_user(db, tip.to_username, now=now)

        await lock_sender(db, from_id)
        # Another delivery of this message may have committed while we waited on the lock.
        if await has_been_processed(db, tip.message_id):
            await db.rollback()
            return _finish(TipOutcome(state=TipState.DUPLICATE), tip)

        remaining = await remaining_allowance(db, from_id, week_start, weekly_allowance)
        if tip.amount > remaining:
            await db.rollback()
            return await _reject(
                db,
                tip,
                TipOutcome(state=TipState.ALLOWANCE_EXCEEDED, remaining_allowance=remaining),
                now=now,
            )

        insert_stmt = (
            insert(SlackTransaction)
            .values(
                id=uuid.uuid4(),
                message_id=tip.message_id,
                from_user_id=from_id,
                to_user_id=to_id,
                amount=tip.amount,
                channel_id=tip.channel_id,
                channel_name=tip.channel_name,
                text=f"{tip.amount} $bren to @{tip.to_username}",
                created_at=now,
            )
            .on_conflict_do_nothing(constraint="uq_slack_transactions_message_id")
            .returning(SlackTransaction.id)
        )
        transaction_id = (await db.execute(insert_stmt)).scalar_one_or_none()
        if transaction_id is None:
            # Lost a race with a concurrent delivery of the same message.
            await db.rollback()
            return _finish(TipOutcome(state=TipState.DUPLICATE), tip)

        await _increment_weekly_points(
            db, user_id=from_id, week_start=week_start, given=tip.amount, received=0, now=now
        )
        await _increment_weekly_points(
            db, user_id=to_id, week_start=week_start, given=0, received=tip.amount, now=now
        )
        await _increment_rankings(db, user_id=from_id, sent=tip.amount, received=0, now=now)
        await _increment_rankings(db, user_id=to_id, sent=0, received=tip.amount, now=now)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        metrics.tip_outcome_total.labels(state=TipState.PERSISTENCE_ERROR.value).inc()
        logger.exception(
            "slack_tip_persistence_error",
            extra={"message_id": tip.message_id, "from_username": tip.from_username},
        )
        raise

    return _finish(
        TipOutcome(
            state=TipState.COMMITTED,
            remaining_allowance=remaining - tip.amount,
            transaction_id=transaction_id,
        ),
        tip,
    )


async def acknowledge_tip(slack: SlackClient, tip: SlackTip, outcome: TipOutcome) -> None:
    """Post the platform-side acknowledgement for a processed tip.

    Replays are not acknowledged again so one message never collects more
    than one reaction from the bot.
    """
    if outcome.state == TipState.COMMITTED:
        await slack.add_reaction(tip.channel_id, tip.message_id, True)
        metrics.tip_outcome_total.labels(state=TipState.ACKNOWLEDGED.value).inc()
        return
    if outcome.state == TipState.SELF_TIP_REJECTED:
        await slack.add_reaction(tip.channel_id, tip.message_id, False)
        await slack.send_dm(tip.from_user_id, SELF_TIP_MESSAGE)
        return
    if outcome.state == TipState.ALLOWANCE_EXCEEDED:
        await slack.add_reaction(tip.channel_id, tip.message_id, False)
        await slack.send_dm(
            tip.from_user_id, insufficient_allowance_message(outcome.remaining_allowance or 0)
        )


async def handle_slack_event(
    payload: dict[str, Any],
    *,
    sessionmaker: async_sessionmaker[AsyncSession],
    slack: SlackClient,
    bot_user_id: str,
    now: UtcNow,
    week_key: WeekKey,
    weekly_allowance: int,
) -> TipState | None:
    """Process a Slack Events API callback after the webhook has been answered.

    Returns the terminal tip state, or None when the event is not a candidate
    tip at all (wrong event type, bot not mentioned).
    """
    if payload.get("type") != "event_callback":
        return None
    event = payload.get("event")
    if not isinstance(event, dict) or event.get("type") not in {"message", "app_mention"}:
        return None

    text = event.get("text")
    channel_id = event.get("channel")
    sender_id = event.get("user")
    message_ts = event.get("ts")
    if not (isinstance(text, str) and channel_id and sender_id and message_ts):
        return None

    async with sessionmaker() as db:
        if await has_been_processed(db, message_ts):
            logger.info("slack_event_duplicate", extra={"message_id": message_ts})
            return TipState.DUPLICATE

    if not is_bot_mentioned(text, bot_user_id):
        return None

    command = parse_tip_command(text, bot_user_id)
    if command is None:
        logger.info("slack_event_parse_failed", extra={"message_id": message_ts})
        return TipState.PARSE_FAILED

    from_username = await slack.get_username(sender_id)
    to_username = await slack.get_username(command.recipient_id)
    if not from_username or not to_username:
        logger.info("slack_event_unresolved_users", extra={"message_id": message_ts})
        return TipState.PARSE_FAILED

    tip = SlackTip(
        from_username=from_username,
        from_user_id=sender_id,
        to_username=to_username,
        amount=command.amount,
        message_id=message_ts,
        channel_id=channel_id,
        channel_name=DEFAULT_CHANNEL_NAME,
    )
    async with sessionmaker() as db:
        outcome = await process_slack_tip(
            db, tip, now=now(), week_key=week_key, weekly_allowance=weekly_allowance
        )
    await acknowledge_tip(slack, tip, outcome)
    return outcome.state
