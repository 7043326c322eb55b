from __future__ import annotations

import datetime as dt
import logging
import os
from collections.abc import Iterator
from pathlib import Path

import psycopg
import pytest
import pytest_asyncio
from alembic import command
from alembic.config import Config
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from psycopg import sql
from sqlalchemy import text
from sqlalchemy.engine import make_url

from bren_api.db.models import ApiCredential
from bren_api.db.session import create_sessionmaker
from bren_api.main import create_app
from bren_api.observability.logging import RequestContextFilter
from bren_api.outbound.farcaster import FarcasterApiError, get_cast_forwarder, get_farcaster_client
from bren_api.outbound.slack import get_slack_client
from bren_api.settings import get_settings
from bren_api.time import get_utcnow

BOT_USER_ID = "UBOT"
TEST_API_KEY = "test-api-key"


def _normalize_psycopg_dsn(url: str) -> str:
    if url.startswith("postgresql+asyncpg://"):
        return url.replace("postgresql+asyncpg://", "postgresql://", 1)
    if url.startswith("postgresql+psycopg://"):
        return url.replace("postgresql+psycopg://", "postgresql://", 1)
    return url


def _get_test_database_url() -> str:
    explicit = os.environ.get("DATABASE_URL_TEST") or os.environ.get("TEST_DATABASE_URL")
    if explicit:
        return explicit
    base_url = get_settings().database_url
    url = make_url(base_url)
    if not url.database:
        raise RuntimeError("DATABASE_URL must include a database name; set DATABASE_URL_TEST for tests.")
    return url.set(database=f"{url.database}_test").render_as_string(hide_password=False)


def _ensure_test_database_exists(test_url: str) -> None:
    url = make_url(test_url)
    if not url.database:
        raise RuntimeError("DATABASE_URL_TEST must include a database name.")
    db_name = url.database
    admin_dsn = _normalize_psycopg_dsn(
        url.set(database="postgres").render_as_string(hide_password=False)
    )
    with psycopg.connect(admin_dsn, autocommit=True) as conn:
        exists = conn.execute(
            "select 1 from pg_database where datname = %s",
            (db_name,),
        ).fetchone()
        if not exists:
            conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(db_name)))


def _set_test_database_url() -> str:
    test_url = _get_test_database_url()
    os.environ["DATABASE_URL"] = test_url
    get_settings.cache_clear()
    return test_url


class FakeSlackClient:
    def __init__(self) -> None:
        self.usernames: dict[str, str] = {}
        self.reactions: list[tuple[str, str, bool]] = []
        self.dms: list[tuple[str, str]] = []
        self.fail_reactions = False

    async def add_reaction(self, channel_id: str, message_ts: str, success: bool) -> None:
        if self.fail_reactions:
            raise RuntimeError("reactions.add unavailable")
        self.reactions.append((channel_id, message_ts, success))

    async def send_dm(self, user_id: str, text: str) -> None:
        self.dms.append((user_id, text))

    async def get_username(self, user_id: str) -> str | None:
        return self.usernames.get(user_id)


class FakeFarcasterClient:
    def __init__(self) -> None:
        self.casts: list[dict[str, object]] = []
        self.fail = False

    async def post_cast(self, *, text: str, parent_hash: str, embed_urls: list[str]) -> str:
        if self.fail:
            raise FarcasterApiError("cast rejected")
        self.casts.append({"text": text, "parent_hash": parent_hash, "embed_urls": embed_urls})
        return f"0xreply{len(self.casts)}"


class FakeCastForwarder:
    def __init__(self) -> None:
        self.forwarded: list[tuple[str, str]] = []

    async def forward(self, url: str, cast_hash: str) -> None:
        self.forwarded.append((url, cast_hash))


class FixedClock:
    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now


@pytest.fixture(scope="session")
def alembic_config() -> Config:
    config_dir = Path(__file__).resolve().parents[1]
    cfg = Config(str(config_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(config_dir / "src/bren_api/db/migrations"))
    cfg.set_main_option("prepend_sys_path", str(config_dir / "src"))
    return cfg


@pytest.fixture(scope="session")
def migrate_db(alembic_config: Config) -> None:
    test_url = _set_test_database_url()
    _ensure_test_database_exists(test_url)
    command.upgrade(alembic_config, "head")


@pytest.fixture(autouse=True)
def settings_env(monkeypatch) -> Iterator[None]:
    monkeypatch.setenv("SLACK_BOT_USER_ID", BOT_USER_ID)
    monkeypatch.setenv("NEW_WEBHOOK_RESPONSE_DELAY_MS", "0")
    monkeypatch.setenv("ALLOWANCE_WEEK_TIMEZONE", "UTC")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_sessionmaker(migrate_db):
    settings = get_settings()
    create_sessionmaker.cache_clear()
    sessionmaker = create_sessionmaker(settings.database_url)
    yield sessionmaker
    await sessionmaker.kw["bind"].dispose()
    create_sessionmaker.cache_clear()


@pytest_asyncio.fixture
async def reset_db(db_sessionmaker):
    async with db_sessionmaker() as session:
        await session.execute(
            text(
                "TRUNCATE bot_replies, slack_rejected_messages, slack_user_rankings, "
                "slack_weekly_points, "
                "slack_transactions, slack_users, user_rankings, weekly_points, point_events, "
                "farcaster_details, api_credentials, users "
                "RESTART IDENTITY CASCADE"
            )
        )
        await session.commit()
    yield


@pytest_asyncio.fixture
async def api_key(db_sessionmaker, reset_db) -> str:
    async with db_sessionmaker() as session:
        session.add(ApiCredential(api_key=TEST_API_KEY, name="tests", is_active=True))
        await session.commit()
    return TEST_API_KEY


@pytest.fixture
def slack_client() -> FakeSlackClient:
    return FakeSlackClient()


@pytest.fixture
def farcaster_client() -> FakeFarcasterClient:
    return FakeFarcasterClient()


@pytest.fixture
def cast_forwarder() -> FakeCastForwarder:
    return FakeCastForwarder()


@pytest.fixture
def clock() -> FixedClock:
    # A Wednesday; the Slack allowance week began on Sunday 2026-10-18.
    return FixedClock(dt.datetime(2026, 10, 21, 12, 0, tzinfo=dt.UTC))


@pytest.fixture
def app(settings_env, slack_client, farcaster_client, cast_forwarder, clock) -> FastAPI:
    app = create_app()
    app.dependency_overrides[get_slack_client] = lambda: slack_client
    app.dependency_overrides[get_farcaster_client] = lambda: farcaster_client
    app.dependency_overrides[get_cast_forwarder] = lambda: cast_forwarder
    app.dependency_overrides[get_utcnow] = lambda: clock
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.outbound_dispatcher.stop()


@pytest.fixture
def bren_log_records() -> Iterator[list[logging.LogRecord]]:
    """Collect records from the bren_api logger tree, which does not propagate."""
    records: list[logging.LogRecord] = []

    class _Collector(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    handler = _Collector(level=logging.DEBUG)
    handler.addFilter(RequestContextFilter())
    logger = logging.getLogger("bren_api")
    logger.addHandler(handler)
    yield records
    logger.removeHandler(handler)
