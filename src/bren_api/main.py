from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bren_api.api.errors import install_error_handlers
from bren_api.api.routers.events import router as events_router
from bren_api.api.routers.farcaster import router as farcaster_router
from bren_api.api.routers.health import router as health_router
from bren_api.api.routers.leaderboard import router as leaderboard_router
from bren_api.api.routers.slack import router as slack_router
from bren_api.api.routers.users import router as users_router
from bren_api.observability.logging import access_log, configure_logging
from bren_api.observability.metrics import render_metrics
from bren_api.observability.middleware import RequestContextMiddleware
from bren_api.observability.tracing import configure_tracing
from bren_api.outbound.dispatcher import OutboundDispatcher
from bren_api.settings import get_settings


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.outbound_dispatcher.stop()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    logger = logging.getLogger("bren_api.main")
    app = FastAPI(title="Bren API", version="0.1.0", lifespan=_lifespan)

    app.state.outbound_dispatcher = OutboundDispatcher.from_settings(settings)
    logger.info(
        "app_configured",
        extra={
            "weekly_allowance": settings.slack_weekly_allowance,
            "allowance_week_timezone": settings.allowance_week_timezone,
            "outbound_max_attempts": settings.outbound_max_attempts,
        },
    )

    app.add_middleware(RequestContextMiddleware, access_log=access_log)

    # Install error handlers early to ensure they catch all exceptions
    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(slack_router)
    app.include_router(farcaster_router)
    app.include_router(events_router)
    app.include_router(users_router)
    app.include_router(leaderboard_router)

    app.add_api_route(
        "/metrics", render_metrics, methods=["GET"], include_in_schema=False
    )

    configure_tracing(app)
    return app


app = create_app()
