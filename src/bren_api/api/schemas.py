from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    status: str = "ok"


class FarcasterDetailsPublic(CamelModel):
    fid: int
    type: str


class UserPublic(CamelModel):
    id: uuid.UUID
    wallet_address: str
    is_allowance_given: bool
    created_at: dt.datetime
    farcaster_details: FarcasterDetailsPublic | None = None


class CreateUserResponse(CamelModel):
    message: str = "User created successfully"
    user: UserPublic


class PointEventPublic(CamelModel):
    event: str
    platform: str
    points: int
    created_at: dt.datetime
    additional_data: dict[str, Any] | None = None


class PointsResponse(CamelModel):
    events: list[PointEventPublic]
    total_points: int


class UserEventRequest(CamelModel):
    wallet_address: str | None = None
    event: str | None = None
    platform: str | None = None
    amount: float | None = Field(default=None, allow_inf_nan=False)
    additional_data: dict[str, Any] | None = None


class UserEventResponse(CamelModel):
    user_id: uuid.UUID
    wallet: str
    points_earned: int
    total_points: int
    message: str = "Event processed successfully"


class ProcessSlackTipRequest(CamelModel):
    from_username: str | None = None
    from_user_id: str | None = None
    to_username: str | None = None
    amount: int | None = None
    message_id: str | None = None
    channel_id: str | None = None
    channel_name: str | None = None


class SlackTipResponse(CamelModel):
    message: str = "Tip processed successfully"
    remaining_allowance: int


class SlackChallengeResponse(BaseModel):
    challenge: str


class NewWebhookResponse(CamelModel):
    message: str = "Webhook received successfully"
    kind: Literal["invite", "tip", "ignored"]
    amount: int | None = None


class BotReplyRequest(CamelModel):
    cast_hash: str = Field(min_length=1, max_length=128)
    text: str = Field(min_length=1)
    kind: Literal["success", "fail", "not_eligible", "invite"]
    params: dict[str, str | int] = Field(default_factory=dict)


class BotReplyResponse(CamelModel):
    status: Literal["posted", "already_exists"]
    cast_hash: str | None = None


class LeaderboardEntryPublic(CamelModel):
    rank: int
    username: str
    display_name: str
    tips_received: int
    tips_received_count: int
    tips_sent: int
    tips_sent_count: int


class LeaderboardResponse(CamelModel):
    entries: list[LeaderboardEntryPublic]
    total: int
    page: int
    page_size: int


class WebhookAck(BaseModel):
    ok: bool = True


class CastData(BaseModel):
    model_config = ConfigDict(extra="allow")

    hash: str | None = None
    text: str | None = None


class CastWebhookRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    data: CastData | None = None
