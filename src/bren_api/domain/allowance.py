from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bren_api.db.models import SlackTransaction, SlackUser

WEEKLY_ALLOWANCE = 500


async def lock_sender(db: AsyncSession, sender_id: uuid.UUID) -> None:
    """Serialize allowance decisions for one sender until the transaction ends."""
    await db.execute(select(SlackUser.id).where(SlackUser.id == sender_id).with_for_update())


async def tips_sent_since(db: AsyncSession, sender_id: uuid.UUID, week_start: dt.datetime) -> int:
    total = await db.scalar(
        select(func.coalesce(func.sum(SlackTransaction.amount), 0)).where(
            SlackTransaction.from_user_id == sender_id,
            SlackTransaction.created_at >= week_start,
        )
    )
    return int(total or 0)


async def remaining_allowance(
    db: AsyncSession,
    sender_id: uuid.UUID,
    week_start: dt.datetime,
    cap: int = WEEKLY_ALLOWANCE,
) -> int:
    return cap - await tips_sent_since(db, sender_id, week_start)
