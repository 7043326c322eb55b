from __future__ import annotations

import contextvars

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
# Set when Slack redelivers an event it considers unanswered.
slack_retry_num_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "slack_retry_num", default=None
)


def get_request_id() -> str | None:
    return request_id_var.get()


def get_slack_retry_num() -> str | None:
    return slack_retry_num_var.get()
