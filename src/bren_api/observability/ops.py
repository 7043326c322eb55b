from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace.status import Status, StatusCode

from bren_api.domain.errors import AppError
from bren_api.observability import metrics

_tracer = trace.get_tracer("bren_api")


@asynccontextmanager
async def observe_operation(
    operation: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> AsyncIterator[None]:
    start = time.perf_counter()
    outcome = "success"
    error_code = ""
    with _tracer.start_as_current_span(f"bren.{operation}") as span:
        if attributes:
            for key, value in attributes.items():
                if value is None:
                    continue
                span.set_attribute(key, value)
        try:
            yield
        except AppError as exc:
            outcome = "error"
            error_code = exc.code
            span.set_attribute("app.error_code", exc.code)
            span.set_status(Status(StatusCode.ERROR, description=exc.code))
            raise
        except Exception as exc:  # noqa: BLE001
            outcome = "error"
            error_code = "unhandled_exception"
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            raise
        finally:
            duration = time.perf_counter() - start
            metrics.operation_total.labels(
                operation=operation, outcome=outcome, error_code=error_code
            ).inc()
            metrics.operation_duration_seconds.labels(operation=operation, outcome=outcome).observe(
                duration
            )
