from __future__ import annotations

import datetime as dt
import json
import logging
import os
import traceback
from typing import Any

from bren_api.observability.context import get_request_id, get_slack_retry_num

_CONFIGURED = False

SERVICE_NAME = "bren-api"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "request_id",
        "slack_retry_num",
        "trace_id",
        "span_id",
    }
)

# Polled by probes and scrapers; kept out of the INFO access log.
_QUIET_PATHS = frozenset({"/health", "/health/ready", "/metrics"})


def _get_trace_context() -> tuple[str | None, str | None]:
    try:
        from opentelemetry.trace import get_current_span
    except Exception:  # noqa: BLE001
        return None, None

    span = get_current_span()
    context = span.get_span_context()
    if not context or not context.is_valid:
        return None, None
    return f"{context.trace_id:032x}", f"{context.span_id:016x}"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.slack_retry_num = get_slack_retry_num()
        trace_id, span_id = _get_trace_context()
        record.trace_id = trace_id
        record.span_id = span_id
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": dt.datetime.now(dt.UTC).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in ("request_id", "slack_retry_num", "trace_id", "span_id"):
            value = getattr(record, key, None)
            if value:
                payload[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_type"] = record.exc_info[0].__name__
            payload["exc"] = "".join(traceback.format_exception(*record.exc_info)).rstrip()

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or value is None:
                continue
            payload[key] = value

        return json.dumps(payload, default=str)


def configure_logging(*, default_level: str = "INFO") -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    level = os.getenv("LOG_LEVEL", default_level).upper()
    log_format = os.getenv("LOG_FORMAT", "json").lower()

    handler: logging.Handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    handler.addFilter(RequestContextFilter())

    base = logging.getLogger("bren_api")
    base.setLevel(level)
    base.propagate = False
    if not base.handlers:
        base.addHandler(handler)

    _CONFIGURED = True


def access_log(event: dict[str, object]) -> None:
    logger = logging.getLogger("bren_api.access")
    level = logging.DEBUG if event.get("path") in _QUIET_PATHS else logging.INFO
    logger.log(level, "http_request", extra=event)
