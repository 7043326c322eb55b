from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class AppError(Exception):
    code: str
    message: str
    status_code: int = 400
    details: dict[str, Any] | None = None


def missing_fields_error(missing: list[str]) -> AppError:
    return AppError(
        code="missing_fields",
        message=f"Missing required fields: {', '.join(missing)}",
        status_code=400,
        details={"missing_fields": missing},
    )


def unauthorized_error() -> AppError:
    return AppError(code="unauthorized", message="Unauthorized access", status_code=401)
