"""Prometheus metrics export."""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Inbound messages
messages_total = Counter(
    "messages_total",
    "Total inbound messages handled",
    ["platform", "outcome"],  # outcome: answered | exhausted | unmapped | error
)

message_duration = Histogram(
    "message_duration_seconds",
    "End-to-end handling time per inbound message",
    ["platform"],
)

# LLM metrics
llm_calls_total = Counter(
    "llm_calls_total",
    "Total LLM API calls",
    ["model", "status"],
)

llm_call_duration = Histogram(
    "llm_call_duration_seconds",
    "LLM API call duration in seconds",
    ["model"],
)

reasoning_rounds = Histogram(
    "reasoning_rounds",
    "Rounds used per reasoning loop",
    buckets=(1, 2, 3, 4, 5),
)

# Tool metrics
tool_calls_total = Counter(
    "tool_calls_total",
    "Total tool calls",
    ["tool_name", "status"],
)

tool_call_duration = Histogram(
    "tool_call_duration_seconds",
    "Tool call duration in seconds",
    ["tool_name"],
)

# Masking boundary
masking_audit_hits_total = Counter(
    "masking_audit_hits_total",
    "Final answers that still contained a forbidden vendor id",
    ["vendor_id"],
)

# Tenant mapping snapshot
mapping_refreshes_total = Counter(
    "mapping_refreshes_total",
    "Tenant mapping refresh attempts",
    ["result"],  # result: unchanged | swapped | failed
)


def get_metrics_response() -> Response:
    """Get Prometheus metrics as HTTP response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
