from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from bren_api.api.schemas import UserEventRequest, UserEventResponse
from bren_api.auth.deps import ApiCredentialDep
from bren_api.db.session import DbSessionDep
from bren_api.domain.errors import AppError, missing_fields_error
from bren_api.domain.point_events import apply_event, parse_event_kind, parse_platform
from bren_api.observability.ops import observe_operation
from bren_api.time import PointsWeekKeyDep, UtcNowDep

router = APIRouter(prefix="/api", tags=["events"])

# Matches users.wallet_address; partner platforms use more than one address format.
MAX_WALLET_LENGTH = 64


async def _read_event_payload(request: Request) -> UserEventRequest:
    # The body is only read once the API key has been accepted.
    try:
        return UserEventRequest.model_validate_json(await request.body())
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from None


@router.post("/user-event", response_model=UserEventResponse)
async def record_user_event(
    request: Request,
    credential: ApiCredentialDep,
    db: DbSessionDep,
    now: UtcNowDep,
    week_key: PointsWeekKeyDep,
) -> UserEventResponse:
    payload = await _read_event_payload(request)
    wallet = (payload.wallet_address or "").strip()
    if not wallet or not payload.event or not payload.platform:
        raise missing_fields_error(
            [
                name
                for name, value in (
                    ("walletAddress", wallet),
                    ("event", payload.event),
                    ("platform", payload.platform),
                )
                if not value
            ]
        )

    if len(wallet) > MAX_WALLET_LENGTH:
        raise AppError(
            code="invalid_wallet_address",
            message="Invalid wallet address",
            status_code=400,
            details={"walletAddress": payload.wallet_address},
        )
    event = parse_event_kind(payload.event)
    platform = parse_platform(payload.platform)

    async with observe_operation(
        "point_event.apply",
        attributes={
            "event.kind": event.value,
            "event.platform": platform.value,
            "api.client": credential.name,
        },
    ):
        applied = await apply_event(
            db,
            wallet_address=wallet,
            event=event,
            platform=platform,
            amount=payload.amount,
            additional_data=payload.additional_data,
            now=now(),
            week_key=week_key,
        )

    return UserEventResponse(
        user_id=applied.user_id,
        wallet=applied.wallet_address,
        points_earned=applied.points_earned,
        total_points=applied.total_points,
    )
