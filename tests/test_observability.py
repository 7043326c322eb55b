from __future__ import annotations

import json
import logging
import re

import pytest
from httpx import AsyncClient

from bren_api.observability.context import request_id_var
from bren_api.observability.logging import JsonFormatter

_REQUEST_ID_RE = re.compile(r"^[A-Fa-f0-9-]{36}$")


@pytest.mark.asyncio
async def test_request_id_is_added_to_responses(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    request_id = response.headers.get("x-request-id")
    assert request_id
    assert _REQUEST_ID_RE.fullmatch(request_id)


@pytest.mark.asyncio
async def test_request_id_is_echoed_when_provided(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "test-request-123"})
    assert response.status_code == 200
    assert response.headers.get("x-request-id") == "test-request-123"


@pytest.mark.asyncio
async def test_invalid_request_id_is_replaced(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "bad id with spaces"})
    assert _REQUEST_ID_RE.fullmatch(response.headers["x-request-id"])


@pytest.mark.asyncio
async def test_metrics_endpoint_exposed(client: AsyncClient) -> None:
    await client.post("/api/slackWebhook", json={"type": "url_verification", "challenge": "c"})
    response = await client.get("/metrics")
    assert response.status_code == 200
    body = response.text
    assert "bren_operation_total" in body
    assert "bren_operation_duration_seconds" in body
    assert "bren_tip_outcome_total" in body
    assert "bren_outbound_job_total" in body


@pytest.mark.asyncio
async def test_background_job_logs_carry_the_submitting_request_id(
    app, bren_log_records: list[logging.LogRecord]
) -> None:
    async def explode() -> None:
        raise RuntimeError("boom")

    token = request_id_var.set("req-outbound-2")
    try:
        app.state.outbound_dispatcher.submit("explode", explode)
    finally:
        request_id_var.reset(token)
    await app.state.outbound_dispatcher.stop()

    failures = [r for r in bren_log_records if r.getMessage() == "outbound_job_failed"]
    assert len(failures) == 1
    formatted = json.loads(JsonFormatter().format(failures[0]))
    assert formatted["job"] == "explode"
    assert formatted["exc_type"] == "RuntimeError"
    assert formatted["request_id"] == "req-outbound-2"


def test_json_formatter_includes_extras_and_request_id() -> None:
    record = logging.LogRecord(
        name="bren_api.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="slack_tip_outcome",
        args=(),
        exc_info=None,
    )
    record.request_id = "req-1"
    record.tip_state = "committed"
    payload = json.loads(JsonFormatter().format(record))

    assert payload["msg"] == "slack_tip_outcome"
    assert payload["request_id"] == "req-1"
    assert payload["tip_state"] == "committed"
    assert payload["service"] == "bren-api"
