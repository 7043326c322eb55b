from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bren_api.db.models import SlackUser, SlackUserRankings


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    username: str
    display_name: str
    tips_received: int
    tips_received_count: int
    tips_sent: int
    tips_sent_count: int


@dataclass(frozen=True)
class LeaderboardPage:
    entries: list[LeaderboardEntry]
    total: int
    page: int
    page_size: int


async def slack_leaderboard(db: AsyncSession, *, page: int, page_size: int) -> LeaderboardPage:
    total = int(await db.scalar(select(func.count()).select_from(SlackUserRankings)) or 0)
    offset = (page - 1) * page_size
    rows = (
        await db.execute(
            select(SlackUserRankings, SlackUser)
            .join(SlackUser, SlackUser.id == SlackUserRankings.user_id)
            .order_by(
                desc(SlackUserRankings.tips_received),
                desc(SlackUserRankings.tips_received_count),
                SlackUser.slack_username.asc(),
            )
            .offset(offset)
            .limit(page_size)
        )
    ).all()
    entries = [
        LeaderboardEntry(
            rank=offset + index + 1,
            username=user.slack_username,
            display_name=user.display_name,
            tips_received=rankings.tips_received,
            tips_received_count=rankings.tips_received_count,
            tips_sent=rankings.tips_sent,
            tips_sent_count=rankings.tips_sent_count,
        )
        for index, (rankings, user) in enumerate(rows)
    ]
    return LeaderboardPage(entries=entries, total=total, page=page, page_size=page_size)
