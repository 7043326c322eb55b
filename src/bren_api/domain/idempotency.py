from __future__ import annotations

import datetime as dt

from sqlalchemy import exists, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from bren_api.db.models import BotReply, SlackRejectedMessage, SlackTransaction


async def has_been_processed(db: AsyncSession, message_id: str) -> bool:
    """Fast-path duplicate check for a Slack message, accepted or rejected.

    The unique keys on ``slack_transactions.message_id`` and
    ``slack_rejected_messages.message_id`` are what actually prevent double
    processing; this only avoids work for obvious replays.
    """
    return bool(
        await db.scalar(
            select(
                or_(
                    exists().where(SlackTransaction.message_id == message_id),
                    exists().where(SlackRejectedMessage.message_id == message_id),
                )
            )
        )
    )


async def record_rejection(
    db: AsyncSession, message_id: str, reason: str, *, now: dt.datetime
) -> bool:
    """Remember a refused tip. Returns False when the message was already recorded."""
    stmt = (
        insert(SlackRejectedMessage)
        .values(message_id=message_id, reason=reason, created_at=now)
        .on_conflict_do_nothing(index_elements=[SlackRejectedMessage.message_id])
        .returning(SlackRejectedMessage.message_id)
    )
    return (await db.execute(stmt)).scalar_one_or_none() is not None


async def has_bot_reply(db: AsyncSession, user_cast_hash: str) -> bool:
    return bool(await db.scalar(select(exists().where(BotReply.user_cast_hash == user_cast_hash))))
