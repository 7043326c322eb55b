from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy import select

from bren_api.db.models import ApiCredential
from bren_api.db.session import DbSessionDep
from bren_api.domain.errors import unauthorized_error


async def get_api_credential(
    db: DbSessionDep,
    api_key: Annotated[str | None, Header(alias="x-api-key")] = None,
) -> ApiCredential | None:
    if not api_key:
        return None
    return await db.scalar(
        select(ApiCredential).where(
            ApiCredential.api_key == api_key,
            ApiCredential.is_active.is_(True),
        )
    )


async def require_api_credential(
    credential: Annotated[ApiCredential | None, Depends(get_api_credential)],
) -> ApiCredential:
    if credential is None:
        raise unauthorized_error()
    return credential


ApiCredentialDep = Annotated[ApiCredential, Depends(require_api_credential)]
