from __future__ import annotations

import datetime as dt
import math
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from bren_api.db.models import PointEvent, UserRankings, WeeklyPoints
from bren_api.domain.errors import AppError
from bren_api.domain.users import get_or_create_user, normalize_wallet_address
from bren_api.time import WeekKey


class EventKind(StrEnum):
    CREATED_ACCOUNT = "CREATED_ACCOUNT"
    COMPLETED_KYC = "COMPLETED_KYC"
    CREATED_CARD = "CREATED_CARD"
    CARD_TRX = "CARD_TRX"
    P2P_TRX = "P2P_TRX"
    P2P_TRX_IP = "P2P_TRX_IP"
    SWAP_SAME_CHAIN = "SWAP_SAME_CHAIN"
    SWAP_CROSS_CHAIN = "SWAP_CROSS_CHAIN"
    CARD_FUNDING = "CARD_FUNDING"
    FIRST_FINANCIAL_TRX = "FIRST_FINANCIAL_TRX"
    COMPLETED_USER_REFERRAL = "COMPLETED_USER_REFERRAL"
    COMPLETED_MERCHANT_REFERRAL = "COMPLETED_MERCHANT_REFERRAL"
    ONBOARD_DIRECT_TRX = "ONBOARD_DIRECT_TRX"
    SWITCH_TRX = "SWITCH_TRX"
    MERCHANT_REGULAR_P2P = "MERCHANT_REGULAR_P2P"
    MERCHANT_INSTANT_PAY = "MERCHANT_INSTANT_PAY"
    ONBOARD_PAY_TRX = "ONBOARD_PAY_TRX"
    MERCHANT_OPN_ORDER = "MERCHANT_OPN_ORDER"
    VA_FUNDING = "VA_FUNDING"
    VA_WITHDRAWAL = "VA_WITHDRAWAL"
    CARD_FUNDING_VA = "CARD_FUNDING_VA"


class Platform(StrEnum):
    ONBOARD = "ONBOARD"
    BLOCASSET = "BLOCASSET"


@dataclass(frozen=True)
class PointRule:
    """Either a fixed award or a per-unit multiplier applied to the amount."""

    fixed: int | None = None
    multiplier: int | None = None

    @property
    def requires_amount(self) -> bool:
        return self.multiplier is not None


def _fixed(points: int) -> PointRule:
    return PointRule(fixed=points)


def _per_unit(multiplier: int) -> PointRule:
    return PointRule(multiplier=multiplier)


# Largest amount accepted for an amount-scaled event.
MAX_EVENT_AMOUNT = 1_000_000

EVENT_POINTS: dict[EventKind, PointRule] = {
    EventKind.CREATED_ACCOUNT: _fixed(25),
    EventKind.COMPLETED_KYC: _fixed(50),
    EventKind.CREATED_CARD: _fixed(50),
    EventKind.FIRST_FINANCIAL_TRX: _fixed(100),
    EventKind.COMPLETED_USER_REFERRAL: _fixed(50),
    EventKind.COMPLETED_MERCHANT_REFERRAL: _fixed(50),
    EventKind.CARD_TRX: _per_unit(10),
    EventKind.P2P_TRX: _per_unit(10),
    EventKind.P2P_TRX_IP: _per_unit(15),
    EventKind.SWAP_SAME_CHAIN: _per_unit(20),
    EventKind.SWAP_CROSS_CHAIN: _per_unit(20),
    EventKind.CARD_FUNDING: _per_unit(15),
    EventKind.ONBOARD_DIRECT_TRX: _per_unit(20),
    EventKind.SWITCH_TRX: _per_unit(20),
    EventKind.MERCHANT_REGULAR_P2P: _per_unit(10),
    EventKind.MERCHANT_INSTANT_PAY: _per_unit(15),
    EventKind.ONBOARD_PAY_TRX: _per_unit(20),
    EventKind.MERCHANT_OPN_ORDER: _per_unit(15),
    EventKind.VA_FUNDING: _per_unit(20),
    EventKind.VA_WITHDRAWAL: _per_unit(20),
    EventKind.CARD_FUNDING_VA: _per_unit(15),
}


@dataclass(frozen=True)
class AppliedEvent:
    user_id: uuid.UUID
    wallet_address: str
    points_earned: int
    total_points: int


def parse_event_kind(value: str) -> EventKind:
    try:
        return EventKind(value)
    except ValueError:
        raise AppError(
            code="invalid_event", message="Invalid event", status_code=400, details={"event": value}
        ) from None


def parse_platform(value: str) -> Platform:
    try:
        return Platform(value)
    except ValueError:
        raise AppError(
            code="invalid_platform",
            message="Invalid platform",
            status_code=400,
            details={"platform": value},
        ) from None


def compute_points(event: EventKind, amount: float | None) -> int:
    """Return the points for *event*, enforcing the amount contract.

    Amount-scaled results are rounded half-up to whole points.
    """
    rule = EVENT_POINTS[event]
    if not rule.requires_amount:
        if amount is not None:
            raise AppError(
                code="amount_not_allowed",
                message=f"Amount should not be provided for {event.value} event",
                status_code=400,
                details={"event": event.value},
            )
        return int(rule.fixed or 0)

    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise AppError(
            code="amount_required",
            message=f"A positive amount is required for {event.value} event",
            status_code=400,
            details={"event": event.value},
        )
    if amount > MAX_EVENT_AMOUNT:
        raise AppError(
            code="amount_out_of_range",
            message=f"Amount must not exceed {MAX_EVENT_AMOUNT}",
            status_code=400,
            details={"event": event.value, "maxAmount": MAX_EVENT_AMOUNT},
        )
    points = Decimal(str(amount)) * rule.multiplier
    return int(points.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


async def total_points_for_user(db: AsyncSession, user_id: uuid.UUID) -> int:
    total = await db.scalar(
        select(func.coalesce(func.sum(PointEvent.points), 0)).where(PointEvent.user_id == user_id)
    )
    return int(total or 0)


async def apply_event(
    db: AsyncSession,
    *,
    wallet_address: str,
    event: EventKind,
    platform: Platform,
    amount: float | None,
    additional_data: dict[str, Any] | None,
    now: dt.datetime,
    week_key: WeekKey,
) -> AppliedEvent:
    points_earned = compute_points(event, amount)
    wallet = normalize_wallet_address(wallet_address)
    additional = additional_data or {}

    user = await get_or_create_user(
        db,
        wallet,
        name=additional.get("name") if isinstance(additional.get("name"), str) else None,
        email=additional.get("email") if isinstance(additional.get("email"), str) else None,
        now=now,
    )

    db.add(
        PointEvent(
            user_id=user.id,
            event=event.value,
            amount=amount,
            points=points_earned,
            platform=platform.value,
            additional_data=additional_data,
            created_at=now,
        )
    )

    weekly_stmt = insert(WeeklyPoints).values(
        id=uuid.uuid4(),
        user_id=user.id,
        week_start=week_key(now),
        platform=platform.value,
        points_earned=points_earned,
        updated_at=now,
    )
    weekly_stmt = weekly_stmt.on_conflict_do_update(
        constraint="uq_weekly_points_user_week_platform",
        set_={
            "points_earned": WeeklyPoints.points_earned + weekly_stmt.excluded.points_earned,
            "updated_at": weekly_stmt.excluded.updated_at,
        },
    )

    rankings_stmt = insert(UserRankings).values(
        user_id=user.id,
        points=points_earned,
        tips_received=points_earned,
        updated_at=now,
    )
    rankings_stmt = rankings_stmt.on_conflict_do_update(
        index_elements=[UserRankings.user_id],
        set_={
            "points": UserRankings.points + rankings_stmt.excluded.points,
            "tips_received": UserRankings.tips_received + rankings_stmt.excluded.tips_received,
            "updated_at": rankings_stmt.excluded.updated_at,
        },
    )

    await db.flush()
    await db.execute(weekly_stmt)
    await db.execute(rankings_stmt)
    await db.commit()

    return AppliedEvent(
        user_id=user.id,
        wallet_address=user.wallet_address,
        points_earned=points_earned,
        total_points=await total_points_for_user(db, user.id),
    )
