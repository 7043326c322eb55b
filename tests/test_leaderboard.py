from __future__ import annotations

import pytest

pytestmark = pytest.mark.usefixtures("reset_db")


async def send_tip(client, app, message_id: str, sender: str, recipient: str, amount: int) -> None:
    response = await client.post(
        "/api/processSlackTip",
        json={
            "fromUsername": sender,
            "fromUserId": f"U{sender.upper()}",
            "toUsername": recipient,
            "amount": amount,
            "messageId": message_id,
            "channelId": "C1",
            "channelName": "general",
        },
    )
    assert response.status_code == 200
    await app.state.outbound_dispatcher.join()


@pytest.mark.asyncio
async def test_leaderboard_orders_by_tips_received(app, client) -> None:
    await send_tip(client, app, "1.1", "alice", "bob", 30)
    await send_tip(client, app, "1.2", "alice", "carol", 50)
    await send_tip(client, app, "1.3", "bob", "carol", 5)

    response = await client.get("/api/leaderboard/slack")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert [entry["username"] for entry in body["entries"]] == ["carol", "bob", "alice"]
    carol = body["entries"][0]
    assert (carol["rank"], carol["tipsReceived"], carol["tipsReceivedCount"]) == (1, 55, 2)


@pytest.mark.asyncio
async def test_leaderboard_pagination(app, client) -> None:
    await send_tip(client, app, "2.1", "alice", "bob", 30)
    await send_tip(client, app, "2.2", "alice", "carol", 50)

    response = await client.get("/api/leaderboard/slack", params={"page": 2, "pageSize": 2})

    body = response.json()
    assert (body["page"], body["pageSize"], body["total"]) == (2, 2, 3)
    assert [(entry["rank"], entry["username"]) for entry in body["entries"]] == [(3, "alice")]


@pytest.mark.asyncio
async def test_leaderboard_rejects_oversized_pages(client) -> None:
    response = await client.get("/api/leaderboard/slack", params={"pageSize": 1000})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_request"
