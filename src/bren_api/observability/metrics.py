from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

operation_total = Counter(
    "bren_operation_total",
    "Count of critical operations.",
    labelnames=("operation", "outcome", "error_code"),
)
operation_duration_seconds = Histogram(
    "bren_operation_duration_seconds",
    "Duration of critical operations in seconds.",
    labelnames=("operation", "outcome"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

tip_outcome_total = Counter(
    "bren_tip_outcome_total",
    "Count of Slack tips by terminal state.",
    labelnames=("state",),
)

outbound_job_total = Counter(
    "bren_outbound_job_total",
    "Count of background acknowledgement jobs by outcome.",
    labelnames=("job", "outcome"),
)


def render_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
