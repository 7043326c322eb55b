from __future__ import annotations

from fastapi import APIRouter, Query

from bren_api.api.schemas import (
    CreateUserResponse,
    FarcasterDetailsPublic,
    PointEventPublic,
    PointsResponse,
    UserPublic,
)
from bren_api.db.models import User
from bren_api.db.session import DbSessionDep
from bren_api.domain.errors import AppError, missing_fields_error
from bren_api.domain.users import (
    create_whitelisted_user,
    is_valid_wallet_address,
    load_user_with_point_events,
    sum_points,
)
from bren_api.observability.ops import observe_operation
from bren_api.time import UtcNowDep

router = APIRouter(prefix="/api", tags=["users"])


def _user_public(user: User) -> UserPublic:
    details = user.farcaster_details
    return UserPublic(
        id=user.id,
        wallet_address=user.wallet_address,
        is_allowance_given=user.is_allowance_given,
        created_at=user.created_at,
        farcaster_details=(
            FarcasterDetailsPublic(fid=details.fid, type=details.type) if details else None
        ),
    )


@router.get("/createUser-db-wallet", response_model=CreateUserResponse)
async def create_user_with_wallet(
    db: DbSessionDep,
    now: UtcNowDep,
    wallet_address: str | None = Query(default=None, alias="walletAddress"),
    fid: str | None = Query(default=None),
) -> CreateUserResponse:
    if not wallet_address or not fid:
        raise missing_fields_error(
            [name for name, value in (("walletAddress", wallet_address), ("fid", fid)) if not value]
        )

    wallet = wallet_address.strip()
    if not is_valid_wallet_address(wallet):
        raise AppError(
            code="invalid_wallet_address",
            message="Invalid wallet address",
            status_code=400,
            details={"walletAddress": wallet_address},
        )
    if not fid.strip().isdigit():
        raise AppError(
            code="invalid_fid",
            message="Invalid fid",
            status_code=400,
            details={"fid": fid},
        )

    async with observe_operation("users.create_whitelisted"):
        user = await create_whitelisted_user(db, wallet_address=wallet, fid=int(fid), now=now())
    return CreateUserResponse(user=_user_public(user))


@router.get("/points/{wallet_address}", response_model=PointsResponse)
async def get_points(wallet_address: str, db: DbSessionDep) -> PointsResponse:
    user = await load_user_with_point_events(db, wallet_address)
    if user is None:
        raise AppError(
            code="wallet_not_found",
            message="Wallet not found",
            status_code=404,
            details={"walletAddress": wallet_address},
        )
    return PointsResponse(
        events=[
            PointEventPublic(
                event=event.event,
                platform=event.platform,
                points=event.points,
                created_at=event.created_at,
                additional_data=event.additional_data,
            )
            for event in user.point_events
        ],
        total_points=sum_points(user.point_events),
    )
