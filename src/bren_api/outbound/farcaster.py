from __future__ import annotations

from typing import Annotated, Any, Protocol

import httpx
from fastapi import Depends

from bren_api.settings import Settings, get_settings


class FarcasterApiError(Exception):
    pass


class FarcasterClient(Protocol):
    async def post_cast(
        self,
        *,
        text: str,
        parent_hash: str,
        embed_urls: list[str],
    ) -> str:
        """Post a reply cast and return its hash."""
        ...


class NeynarClient:
    def __init__(
        self,
        *,
        api_key: str | None,
        signer_uuid: str | None,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._signer_uuid = signer_uuid
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def post_cast(
        self,
        *,
        text: str,
        parent_hash: str,
        embed_urls: list[str],
    ) -> str:
        if not self._api_key or not self._signer_uuid:
            raise FarcasterApiError("NEYNAR_API_KEY and NEYNAR_SIGNER_UUID are required to post casts")
        payload: dict[str, Any] = {
            "signer_uuid": self._signer_uuid,
            "text": text,
            "parent": parent_hash,
            "embeds": [{"url": url} for url in embed_urls],
        }
        headers = {"accept": "application/json", "x-api-key": self._api_key}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(f"{self._base_url}/cast", json=payload, headers=headers)
        response.raise_for_status()
        body = response.json()
        cast = body.get("cast") if isinstance(body, dict) else None
        cast_hash = cast.get("hash") if isinstance(cast, dict) else None
        if not isinstance(cast_hash, str) or not cast_hash:
            raise FarcasterApiError("Neynar response did not include a cast hash")
        return cast_hash


def get_farcaster_client(settings: Settings = Depends(get_settings)) -> FarcasterClient:
    return NeynarClient(
        api_key=settings.neynar_api_key,
        signer_uuid=settings.neynar_signer_uuid,
        base_url=str(settings.neynar_api_base_url),
        timeout=settings.outbound_timeout_seconds,
    )


FarcasterClientDep = Annotated[FarcasterClient, Depends(get_farcaster_client)]


class CastForwarder(Protocol):
    async def forward(self, url: str, cast_hash: str) -> None:
        ...


class HttpCastForwarder:
    """Hands a cast hash to the processor endpoint responsible for its kind."""

    def __init__(self, *, timeout: float, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport

    async def forward(self, url: str, cast_hash: str) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(url, json={"hash": cast_hash})
        response.raise_for_status()


def get_cast_forwarder(settings: Settings = Depends(get_settings)) -> CastForwarder:
    return HttpCastForwarder(timeout=settings.outbound_timeout_seconds)


CastForwarderDep = Annotated[CastForwarder, Depends(get_cast_forwarder)]
