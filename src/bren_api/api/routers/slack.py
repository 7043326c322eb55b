from __future__ import annotations

import logging
from functools import partial
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic.alias_generators import to_camel

from bren_api.api.schemas import (
    ProcessSlackTipRequest,
    SlackChallengeResponse,
    SlackTipResponse,
    WebhookAck,
)
from bren_api.db.session import DbSessionDep, SessionmakerDep
from bren_api.domain.errors import AppError, missing_fields_error
from bren_api.domain.slack_tips import (
    SELF_TIP_MESSAGE,
    SlackTip,
    TipState,
    acknowledge_tip,
    handle_slack_event,
    insufficient_allowance_message,
    process_slack_tip,
)
from bren_api.observability.ops import observe_operation
from bren_api.outbound.dispatcher import OutboundDispatcherDep
from bren_api.outbound.slack import SlackClientDep
from bren_api.settings import Settings, get_settings
from bren_api.time import AllowanceWeekKeyDep, UtcNowDep

router = APIRouter(prefix="/api", tags=["slack"])
logger = logging.getLogger(__name__)

_REQUIRED_TIP_FIELDS = (
    "from_username",
    "from_user_id",
    "to_username",
    "amount",
    "message_id",
    "channel_id",
    "channel_name",
)


def _invalid_webhook_payload() -> AppError:
    return AppError(
        code="invalid_webhook_payload",
        message="Webhook payload must be a JSON object",
        status_code=400,
    )


@router.post("/processSlackTip", response_model=SlackTipResponse)
async def process_slack_tip_endpoint(
    payload: ProcessSlackTipRequest,
    db: DbSessionDep,
    slack: SlackClientDep,
    dispatcher: OutboundDispatcherDep,
    now: UtcNowDep,
    week_key: AllowanceWeekKeyDep,
    settings: Settings = Depends(get_settings),
) -> SlackTipResponse:
    missing = [
        to_camel(name) for name in _REQUIRED_TIP_FIELDS if getattr(payload, name) in (None, "")
    ]
    if missing:
        raise missing_fields_error(missing)
    if payload.amount is None or payload.amount <= 0:
        raise AppError(
            code="invalid_request",
            message="Amount must be a positive integer",
            status_code=400,
            details={"amount": payload.amount},
        )

    tip = SlackTip(
        from_username=payload.from_username or "",
        from_user_id=payload.from_user_id or "",
        to_username=payload.to_username or "",
        amount=payload.amount,
        message_id=payload.message_id or "",
        channel_id=payload.channel_id or "",
        channel_name=payload.channel_name or "",
    )
    async with observe_operation("slack_tip.process", attributes={"slack.message_id": tip.message_id}):
        outcome = await process_slack_tip(
            db,
            tip,
            now=now(),
            week_key=week_key,
            weekly_allowance=settings.slack_weekly_allowance,
        )

    if outcome.state == TipState.DUPLICATE:
        raise AppError(
            code="message_already_processed",
            message="Message already processed",
            status_code=200,
            details={"messageId": tip.message_id},
        )

    dispatcher.submit(
        "slack_tip_ack",
        partial(acknowledge_tip, slack, tip, outcome),
        message_id=tip.message_id,
        tip_state=outcome.state.value,
    )

    if outcome.state == TipState.SELF_TIP_REJECTED:
        raise AppError(code="self_tip", message=SELF_TIP_MESSAGE, status_code=400)
    if outcome.state == TipState.ALLOWANCE_EXCEEDED:
        remaining = outcome.remaining_allowance or 0
        raise AppError(
            code="insufficient_allowance",
            message=insufficient_allowance_message(remaining),
            status_code=400,
            details={"remainingAllowance": remaining},
        )

    return SlackTipResponse(remaining_allowance=outcome.remaining_allowance or 0)


@router.post("/slackWebhook", response_model=SlackChallengeResponse | WebhookAck)
async def slack_webhook(
    request: Request,
    sessionmaker: SessionmakerDep,
    slack: SlackClientDep,
    dispatcher: OutboundDispatcherDep,
    now: UtcNowDep,
    week_key: AllowanceWeekKeyDep,
    settings: Settings = Depends(get_settings),
) -> SlackChallengeResponse | WebhookAck:
    try:
        payload: Any = await request.json()
    except ValueError:
        raise _invalid_webhook_payload() from None
    if not isinstance(payload, dict):
        raise _invalid_webhook_payload()

    if payload.get("type") == "url_verification":
        challenge = payload.get("challenge")
        if not isinstance(challenge, str):
            raise _invalid_webhook_payload()
        return SlackChallengeResponse(challenge=challenge)

    # Slack redelivers when it does not get a fast 200, so the event is
    # handled after the response; replays are caught by the message ts.
    event = payload.get("event") if isinstance(payload.get("event"), dict) else {}
    logger.info(
        "slack_webhook_received",
        extra={
            "slack_event_id": payload.get("event_id"),
            "slack_event_type": event.get("type"),
        },
    )
    dispatcher.submit(
        "slack_event",
        partial(
            handle_slack_event,
            payload,
            sessionmaker=sessionmaker,
            slack=slack,
            bot_user_id=settings.slack_bot_user_id,
            now=now,
            week_key=week_key,
            weekly_allowance=settings.slack_weekly_allowance,
        ),
        message_id=event.get("ts"),
    )
    return WebhookAck()
