from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import urlencode

import httpx
from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from bren_api.db.models import BotReply
from bren_api.domain.idempotency import has_bot_reply
from bren_api.outbound.farcaster import FarcasterApiError, FarcasterClient

logger = logging.getLogger(__name__)


class ReplyKind(StrEnum):
    SUCCESS = "success"
    FAIL = "fail"
    NOT_ELIGIBLE = "not_eligible"
    INVITE = "invite"


class ReplyStatus(StrEnum):
    POSTED = "posted"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


# Frame path and the query parameters each reply kind embeds, in order.
_FRAME_ROUTES: dict[ReplyKind, tuple[str, tuple[str, ...]]] = {
    ReplyKind.SUCCESS: ("success", ("fid", "tip", "all")),
    ReplyKind.FAIL: ("fail", ("message", "all")),
    ReplyKind.NOT_ELIGIBLE: ("not-eligible", ("message",)),
    ReplyKind.INVITE: ("invite", ("user", "left")),
}


@dataclass(frozen=True)
class BotReplyResult:
    status: ReplyStatus
    cast_hash: str | None = None

    @property
    def posted(self) -> bool:
        return self.status == ReplyStatus.POSTED


class MissingFrameParams(ValueError):
    pass


def build_frame_url(frames_base_url: str, kind: ReplyKind, params: dict[str, object]) -> str:
    path, names = _FRAME_ROUTES[kind]
    missing = [name for name in names if params.get(name) is None]
    if missing:
        raise MissingFrameParams(f"Missing frame parameters for {kind.value}: {', '.join(missing)}")
    query = urlencode([(name, str(params[name])) for name in names])
    return f"{frames_base_url.rstrip('/')}/{path}?{query}"


async def _claim(db: AsyncSession, user_cast_hash: str, kind: ReplyKind, now: dt.datetime) -> uuid.UUID | None:
    stmt = (
        insert(BotReply)
        .values(id=uuid.uuid4(), user_cast_hash=user_cast_hash, kind=kind.value, created_at=now)
        .on_conflict_do_nothing(constraint="uq_bot_replies_user_cast_hash")
        .returning(BotReply.id)
    )
    claim_id = (await db.execute(stmt)).scalar_one_or_none()
    await db.commit()
    return claim_id


async def post_bot_reply(
    db: AsyncSession,
    client: FarcasterClient,
    *,
    user_cast_hash: str,
    text: str,
    kind: ReplyKind,
    params: dict[str, object],
    frames_base_url: str,
    now: dt.datetime,
) -> BotReplyResult:
    """Reply to a cast at most once.

    The reply row is claimed before anything is posted, so two concurrent
    callers cannot both reach the platform. A failed post releases the claim.
    If the process dies between posting and recording the hash, the claim
    stays without a hash and no second reply is ever posted for that cast.
    """
    embed_url = build_frame_url(frames_base_url, kind, params)

    claim_id = None
    if not await has_bot_reply(db, user_cast_hash):
        claim_id = await _claim(db, user_cast_hash, kind, now)
    if claim_id is None:
        logger.info("bot_reply_already_exists", extra={"user_cast_hash": user_cast_hash})
        return BotReplyResult(status=ReplyStatus.ALREADY_EXISTS)

    try:
        cast_hash = await client.post_cast(
            text=text, parent_hash=user_cast_hash, embed_urls=[embed_url]
        )
    except (httpx.HTTPError, FarcasterApiError):
        logger.exception(
            "bot_reply_post_failed",
            extra={"user_cast_hash": user_cast_hash, "reply_kind": kind.value},
        )
        await db.execute(delete(BotReply).where(BotReply.id == claim_id))
        await db.commit()
        return BotReplyResult(status=ReplyStatus.FAILED)

    await db.execute(
        update(BotReply)
        .where(BotReply.id == claim_id)
        .values(bot_cast_hash=cast_hash, posted_at=now)
    )
    await db.commit()
    logger.info(
        "bot_reply_posted",
        extra={"user_cast_hash": user_cast_hash, "bot_cast_hash": cast_hash, "reply_kind": kind.value},
    )
    return BotReplyResult(status=ReplyStatus.POSTED, cast_hash=cast_hash)
