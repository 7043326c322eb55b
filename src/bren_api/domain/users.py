from __future__ import annotations

import datetime as dt
import re

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bren_api.db.models import FarcasterDetails, PointEvent, User
from bren_api.domain.errors import AppError

WALLET_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
WHITELISTED = "WHITELISTED"


def normalize_wallet_address(value: str) -> str:
    return value.strip().lower()


def is_valid_wallet_address(value: str) -> bool:
    return bool(WALLET_ADDRESS_RE.fullmatch(value))


async def get_or_create_user(
    db: AsyncSession,
    wallet_address: str,
    *,
    name: str | None = None,
    email: str | None = None,
    now: dt.datetime,
) -> User:
    wallet = normalize_wallet_address(wallet_address)
    stmt = (
        insert(User)
        .values(wallet_address=wallet, name=name, email=email, created_at=now)
        .on_conflict_do_nothing(index_elements=[User.wallet_address])
    )
    await db.execute(stmt)
    user = await db.scalar(select(User).where(User.wallet_address == wallet))
    if user is None:
        raise RuntimeError("User upsert failed without returning an existing user.")
    return user


async def create_whitelisted_user(
    db: AsyncSession,
    *,
    wallet_address: str,
    fid: int,
    now: dt.datetime,
) -> User:
    wallet = normalize_wallet_address(wallet_address)
    user = User(wallet_address=wallet, is_allowance_given=False, created_at=now)
    user.farcaster_details = FarcasterDetails(fid=fid, type=WHITELISTED, created_at=now)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AppError(
            code="user_already_exists",
            message="A user with this wallet address or fid already exists",
            status_code=409,
            details={"wallet_address": wallet, "fid": fid},
        ) from None
    return user


async def load_user_with_point_events(db: AsyncSession, wallet_address: str) -> User | None:
    return await db.scalar(
        select(User)
        .where(User.wallet_address == normalize_wallet_address(wallet_address))
        .options(selectinload(User.point_events))
    )


def sum_points(events: list[PointEvent]) -> int:
    return sum(event.points for event in events)
