from __future__ import annotations

import logging
from typing import Annotated, Any, Protocol

import httpx
from fastapi import Depends

from bren_api.settings import Settings, get_settings

SUCCESS_REACTION = "white_check_mark"
FAILURE_REACTION = "x"


class SlackApiError(Exception):
    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack API {method} failed: {error}")
        self.method = method
        self.error = error


class SlackClient(Protocol):
    async def add_reaction(self, channel_id: str, message_ts: str, success: bool) -> None:
        ...

    async def send_dm(self, user_id: str, text: str) -> None:
        ...

    async def get_username(self, user_id: str) -> str | None:
        ...


class HttpSlackClient:
    """Minimal Slack Web API client over httpx.

    Slack answers most failures with HTTP 200 and ``{"ok": false}``, so every
    call checks the body as well as the status code.
    """

    def __init__(
        self,
        *,
        token: str | None,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._logger = logging.getLogger("bren_api.outbound.slack")

    async def _call(
        self, method: str, payload: dict[str, Any], *, form: bool = False
    ) -> dict[str, Any]:
        if not self._token:
            raise SlackApiError(method, "missing_token")
        headers = {"Authorization": f"Bearer {self._token}"}
        url = f"{self._base_url}/{method}"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            # Read methods such as users.info only accept form-encoded arguments.
            if form:
                response = await client.post(url, data=payload, headers=headers)
            else:
                response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        body = response.json()
        if not body.get("ok"):
            raise SlackApiError(method, str(body.get("error") or "unknown_error"))
        return body

    async def add_reaction(self, channel_id: str, message_ts: str, success: bool) -> None:
        # Slack identifies messages by their ts within a channel.
        await self._call(
            "reactions.add",
            {
                "channel": channel_id,
                "timestamp": message_ts,
                "name": SUCCESS_REACTION if success else FAILURE_REACTION,
            },
        )

    async def send_dm(self, user_id: str, text: str) -> None:
        conversation = await self._call("conversations.open", {"users": user_id})
        channel = conversation.get("channel") or {}
        channel_id = channel.get("id")
        if not channel_id:
            raise SlackApiError("conversations.open", "missing_channel")
        await self._call("chat.postMessage", {"channel": channel_id, "text": text})
        self._logger.info("slack_dm_sent", extra={"slack_user_id": user_id})

    async def get_username(self, user_id: str) -> str | None:
        try:
            body = await self._call("users.info", {"user": user_id}, form=True)
        except (httpx.HTTPError, SlackApiError):
            self._logger.exception("slack_user_lookup_failed", extra={"slack_user_id": user_id})
            return None
        user = body.get("user") or {}
        name = user.get("name")
        return name if isinstance(name, str) and name else None


def get_slack_client(settings: Settings = Depends(get_settings)) -> SlackClient:
    return HttpSlackClient(
        token=settings.slack_bot_token,
        base_url=str(settings.slack_api_base_url),
        timeout=settings.outbound_timeout_seconds,
    )


SlackClientDep = Annotated[SlackClient, Depends(get_slack_client)]
