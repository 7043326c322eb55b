from __future__ import annotations

import asyncio
import logging
from functools import partial

from fastapi import APIRouter, Depends

from bren_api.api.schemas import (
    BotReplyRequest,
    BotReplyResponse,
    CastWebhookRequest,
    NewWebhookResponse,
)
from bren_api.auth.deps import ApiCredentialDep
from bren_api.db.session import DbSessionDep
from bren_api.domain.bot_replies import (
    MissingFrameParams,
    ReplyKind,
    ReplyStatus,
    post_bot_reply,
)
from bren_api.domain.errors import AppError
from bren_api.domain.tip_commands import CastKind, classify_cast, extract_cast_amount
from bren_api.observability.ops import observe_operation
from bren_api.outbound.dispatcher import OutboundDispatcherDep
from bren_api.outbound.farcaster import CastForwarderDep, FarcasterClientDep
from bren_api.settings import Settings, get_settings
from bren_api.time import UtcNowDep

router = APIRouter(prefix="/api", tags=["farcaster"])
logger = logging.getLogger(__name__)


@router.post("/newWebHook", response_model=NewWebhookResponse)
async def new_webhook(
    payload: CastWebhookRequest,
    forwarder: CastForwarderDep,
    dispatcher: OutboundDispatcherDep,
    settings: Settings = Depends(get_settings),
) -> NewWebhookResponse:
    data = payload.data
    if data is None or not data.hash or data.text is None:
        raise AppError(
            code="invalid_webhook_payload",
            message="Webhook payload must include data.hash and data.text",
            status_code=400,
        )

    kind = classify_cast(data.text)
    amount = extract_cast_amount(data.text) if kind == CastKind.TIP else None
    target = {
        CastKind.INVITE: settings.invite_processing_url,
        CastKind.TIP: settings.tip_processing_url,
    }.get(kind)
    if target is not None:
        dispatcher.submit(
            f"cast_forward_{kind.value}",
            partial(forwarder.forward, str(target), data.hash),
            cast_hash=data.hash,
        )
    logger.info(
        "cast_webhook_classified",
        extra={"cast_hash": data.hash, "cast_kind": kind.value, "amount": amount},
    )

    # Give the forwarding job a head start before the webhook is answered.
    await asyncio.sleep(settings.new_webhook_response_delay_ms / 1000)
    return NewWebhookResponse(kind=kind.value, amount=amount)


@router.post("/bot-replies", response_model=BotReplyResponse)
async def create_bot_reply(
    payload: BotReplyRequest,
    _credential: ApiCredentialDep,
    db: DbSessionDep,
    client: FarcasterClientDep,
    now: UtcNowDep,
    settings: Settings = Depends(get_settings),
) -> BotReplyResponse:
    kind = ReplyKind(payload.kind)
    try:
        async with observe_operation("bot_reply.post", attributes={"cast.hash": payload.cast_hash}):
            result = await post_bot_reply(
                db,
                client,
                user_cast_hash=payload.cast_hash,
                text=payload.text,
                kind=kind,
                params=dict(payload.params),
                frames_base_url=str(settings.frames_base_url),
                now=now(),
            )
    except MissingFrameParams as exc:
        raise AppError(
            code="invalid_request",
            message=str(exc),
            status_code=400,
            details={"kind": kind.value},
        ) from None

    if result.status == ReplyStatus.FAILED:
        raise AppError(
            code="reply_post_failed",
            message="Failed to post reply cast",
            status_code=502,
            details={"castHash": payload.cast_hash},
        )
    return BotReplyResponse(status=result.status.value, cast_hash=result.cast_hash)
