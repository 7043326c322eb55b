from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import func, select

from bren_api.db.models import ApiCredential, PointEvent, User, UserRankings, WeeklyPoints

pytestmark = pytest.mark.usefixtures("reset_db")

WALLET = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"


def event_body(event: str, **extra: object) -> dict[str, object]:
    body: dict[str, object] = {"walletAddress": WALLET, "event": event, "platform": "ONBOARD"}
    body.update(extra)
    return body


async def count_rows(db_sessionmaker, model) -> int:
    async with db_sessionmaker() as session:
        return int(await session.scalar(select(func.count()).select_from(model)) or 0)


@pytest.mark.asyncio
async def test_fixed_event_awards_points(client, api_key, db_sessionmaker) -> None:
    response = await client.post(
        "/api/user-event",
        json=event_body("CREATED_ACCOUNT", additionalData={"name": "Ada", "email": "ada@x.io"}),
        headers={"x-api-key": api_key},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["pointsEarned"] == 25
    assert body["totalPoints"] == 25
    assert body["wallet"] == WALLET.lower()
    async with db_sessionmaker() as session:
        user = await session.scalar(select(User))
        assert user.wallet_address == WALLET.lower()
        assert (user.name, user.email) == ("Ada", "ada@x.io")


@pytest.mark.asyncio
async def test_amount_event_accumulates(client, api_key, db_sessionmaker) -> None:
    headers = {"x-api-key": api_key}
    await client.post("/api/user-event", json=event_body("CREATED_ACCOUNT"), headers=headers)
    response = await client.post(
        "/api/user-event", json=event_body("CARD_TRX", amount=10), headers=headers
    )

    assert response.status_code == 200
    assert response.json()["pointsEarned"] == 100
    assert response.json()["totalPoints"] == 125

    async with db_sessionmaker() as session:
        weekly = await session.scalar(select(WeeklyPoints))
        assert weekly.points_earned == 125
        assert weekly.week_start == dt.datetime(2026, 10, 19, tzinfo=dt.UTC)
        rankings = await session.scalar(select(UserRankings))
        assert (rankings.points, rankings.tips_received) == (125, 125)


@pytest.mark.asyncio
async def test_wallet_case_does_not_split_users(client, api_key, db_sessionmaker) -> None:
    headers = {"x-api-key": api_key}
    await client.post("/api/user-event", json=event_body("CREATED_ACCOUNT"), headers=headers)
    response = await client.post(
        "/api/user-event",
        json={"walletAddress": WALLET.lower(), "event": "COMPLETED_KYC", "platform": "BLOCASSET"},
        headers=headers,
    )

    assert response.json()["totalPoints"] == 75
    assert await count_rows(db_sessionmaker, User) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("body", "code"),
    [
        (event_body("CARD_TRX"), "amount_required"),
        (event_body("CARD_TRX", amount=0), "amount_required"),
        (event_body("CREATED_ACCOUNT", amount=5), "amount_not_allowed"),
        (event_body("MADE_COFFEE"), "invalid_event"),
        (event_body("CREATED_ACCOUNT", platform="ELSEWHERE"), "invalid_platform"),
        (event_body("CARD_TRX", amount=2_000_000), "amount_out_of_range"),
        (
            {"walletAddress": "x" * 65, "event": "CREATED_ACCOUNT", "platform": "ONBOARD"},
            "invalid_wallet_address",
        ),
        (
            {"walletAddress": "   ", "event": "CREATED_ACCOUNT", "platform": "ONBOARD"},
            "missing_fields",
        ),
        ({"event": "CREATED_ACCOUNT"}, "missing_fields"),
    ],
)
async def test_invalid_events_are_rejected(client, api_key, db_sessionmaker, body, code) -> None:
    response = await client.post("/api/user-event", json=body, headers={"x-api-key": api_key})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == code
    assert await count_rows(db_sessionmaker, PointEvent) == 0
    assert await count_rows(db_sessionmaker, User) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"x-api-key": "not-a-key"}])
async def test_unauthorized_requests_do_not_mutate(client, api_key, db_sessionmaker, headers) -> None:
    response = await client.post(
        "/api/user-event", json=event_body("CREATED_ACCOUNT"), headers=headers
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"
    assert await count_rows(db_sessionmaker, User) == 0


@pytest.mark.asyncio
async def test_inactive_key_is_rejected(client, api_key, db_sessionmaker) -> None:
    async with db_sessionmaker() as session:
        credential = await session.scalar(select(ApiCredential))
        credential.is_active = False
        await session.commit()

    response = await client.post(
        "/api/user-event", json=event_body("CREATED_ACCOUNT"), headers={"x-api-key": api_key}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_auth_is_checked_before_body(client, api_key) -> None:
    response = await client.post("/api/user-event", json={"event": 5})
    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"x-api-key": "not-a-key"}])
async def test_malformed_body_without_valid_key_is_unauthorized(
    client, api_key, headers
) -> None:
    response = await client.post(
        "/api/user-event",
        content=b"{not json",
        headers={"content-type": "application/json", **headers},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"


@pytest.mark.asyncio
async def test_malformed_body_with_valid_key_is_invalid_request(client, api_key) -> None:
    response = await client.post(
        "/api/user-event",
        content=b"{not json",
        headers={"content-type": "application/json", "x-api-key": api_key},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_request"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity"])
async def test_non_finite_amount_is_a_client_error(
    client, api_key, db_sessionmaker, amount
) -> None:
    body = (
        f'{{"walletAddress": "{WALLET}", "event": "CARD_TRX", '
        f'"platform": "ONBOARD", "amount": {amount}}}'
    )
    response = await client.post(
        "/api/user-event",
        content=body.encode(),
        headers={"content-type": "application/json", "x-api-key": api_key},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_request"
    assert await count_rows(db_sessionmaker, PointEvent) == 0


@pytest.mark.asyncio
async def test_non_hex_wallet_is_accepted(client, api_key) -> None:
    response = await client.post(
        "/api/user-event",
        json={"walletAddress": "BLOC-Wallet-0042", "event": "COMPLETED_KYC", "platform": "BLOCASSET"},
        headers={"x-api-key": api_key},
    )

    assert response.status_code == 200
    assert response.json()["wallet"] == "bloc-wallet-0042"
    assert response.json()["pointsEarned"] == 50
