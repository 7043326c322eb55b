from __future__ import annotations

import json

import httpx
import pytest

from bren_api.outbound.farcaster import FarcasterApiError, HttpCastForwarder, NeynarClient
from bren_api.outbound.slack import HttpSlackClient, SlackApiError


def _slack_client(handler) -> HttpSlackClient:
    return HttpSlackClient(
        token="xoxb-test",
        base_url="https://slack.test/api",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_add_reaction_posts_reaction_name() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    client = _slack_client(handler)
    await client.add_reaction("C1", "1700000000.000100", True)
    await client.add_reaction("C1", "1700000000.000100", False)

    assert [r.url.path for r in requests] == ["/api/reactions.add", "/api/reactions.add"]
    assert requests[0].headers["authorization"] == "Bearer xoxb-test"
    assert json.loads(requests[0].content)["name"] == "white_check_mark"
    assert json.loads(requests[1].content)["name"] == "x"


@pytest.mark.asyncio
async def test_send_dm_opens_conversation_then_posts() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path.endswith("conversations.open"):
            return httpx.Response(200, json={"ok": True, "channel": {"id": "D1"}})
        body = json.loads(request.content)
        assert body == {"channel": "D1", "text": "hello"}
        return httpx.Response(200, json={"ok": True})

    await _slack_client(handler).send_dm("U1", "hello")
    assert calls == ["/api/conversations.open", "/api/chat.postMessage"]


@pytest.mark.asyncio
async def test_slack_error_body_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})

    with pytest.raises(SlackApiError) as exc_info:
        await _slack_client(handler).add_reaction("C404", "1.2", True)
    assert exc_info.value.error == "channel_not_found"


@pytest.mark.asyncio
async def test_get_username_reads_users_info() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/users.info"
        assert b"user=U1" in request.content
        return httpx.Response(200, json={"ok": True, "user": {"id": "U1", "name": "alice"}})

    assert await _slack_client(handler).get_username("U1") == "alice"


@pytest.mark.asyncio
async def test_get_username_returns_none_on_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    assert await _slack_client(handler).get_username("U1") is None


@pytest.mark.asyncio
async def test_missing_token_is_an_error() -> None:
    client = HttpSlackClient(token=None, base_url="https://slack.test/api", timeout=1.0)
    with pytest.raises(SlackApiError):
        await client.add_reaction("C1", "1.2", True)


@pytest.mark.asyncio
async def test_neynar_post_cast_returns_hash() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v2/farcaster/cast"
        assert request.headers["x-api-key"] == "neynar-key"
        body = json.loads(request.content)
        assert body["signer_uuid"] == "signer"
        assert body["parent"] == "0xparent"
        assert body["embeds"] == [{"url": "https://frames.test/success?fid=1"}]
        return httpx.Response(200, json={"success": True, "cast": {"hash": "0xreply"}})

    client = NeynarClient(
        api_key="neynar-key",
        signer_uuid="signer",
        base_url="https://neynar.test/v2/farcaster",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )
    cast_hash = await client.post_cast(
        text="thanks", parent_hash="0xparent", embed_urls=["https://frames.test/success?fid=1"]
    )
    assert cast_hash == "0xreply"


@pytest.mark.asyncio
async def test_neynar_requires_credentials() -> None:
    client = NeynarClient(
        api_key=None, signer_uuid=None, base_url="https://neynar.test", timeout=1.0
    )
    with pytest.raises(FarcasterApiError):
        await client.post_cast(text="x", parent_hash="0x1", embed_urls=[])


@pytest.mark.asyncio
async def test_cast_forwarder_posts_hash() -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={})

    forwarder = HttpCastForwarder(timeout=1.0, transport=httpx.MockTransport(handler))
    await forwarder.forward("https://bren.test/api/process-webhook", "0xabc")
    assert seen == [{"hash": "0xabc"}]
