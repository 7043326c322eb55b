from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from bren_api.api.schemas import LeaderboardEntryPublic, LeaderboardResponse
from bren_api.db.session import DbSessionDep
from bren_api.domain.errors import AppError
from bren_api.domain.leaderboard import slack_leaderboard
from bren_api.settings import Settings, get_settings

router = APIRouter(prefix="/api", tags=["leaderboard"])


@router.get("/leaderboard/slack", response_model=LeaderboardResponse)
async def get_slack_leaderboard(
    db: DbSessionDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, alias="pageSize"),
    settings: Settings = Depends(get_settings),
) -> LeaderboardResponse:
    if page_size > settings.leaderboard_max_page_size:
        raise AppError(
            code="invalid_request",
            message="Page size too large",
            status_code=400,
            details={"pageSize": page_size, "max": settings.leaderboard_max_page_size},
        )
    result = await slack_leaderboard(db, page=page, page_size=page_size)
    return LeaderboardResponse(
        entries=[
            LeaderboardEntryPublic(
                rank=entry.rank,
                username=entry.username,
                display_name=entry.display_name,
                tips_received=entry.tips_received,
                tips_received_count=entry.tips_received_count,
                tips_sent=entry.tips_sent,
                tips_sent_count=entry.tips_sent_count,
            )
            for entry in result.entries
        ],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )
