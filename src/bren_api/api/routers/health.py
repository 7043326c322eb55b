from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from bren_api.api.schemas import HealthResponse
from bren_api.db.session import DbSessionDep

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/health/ready", response_model=HealthResponse)
async def ready(db: DbSessionDep) -> HealthResponse:
    # SQLAlchemyError propagates to the persistence_error handler.
    await db.execute(text("SELECT 1"))
    return HealthResponse()
