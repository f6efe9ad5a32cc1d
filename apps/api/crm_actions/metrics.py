from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter("http_requests_total", "HTTP requests served", ["method", "path", "status"])
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

assistant_actions_total = Counter(
    "assistant_actions_total",
    "Total assistant actions executed by outcome",
    ["action_type", "status"],
)

assistant_action_duration_seconds = Histogram(
    "assistant_action_duration_seconds",
    "Assistant action execution duration in seconds",
    ["action_type"],
)

assistant_bulk_items_total = Counter(
    "assistant_bulk_items_total",
    "Total bulk action items by outcome",
    ["action_type", "outcome"],
)

assistant_parse_failures_total = Counter(
    "assistant_parse_failures_total",
    "Total malformed action blocks",
)

assistant_stage_fallbacks_total = Counter(
    "assistant_stage_fallbacks_total",
    "Total stage resolutions that fell back to the first stage",
)


# ObjectId and UUID path segments collapse to {id}.
_ID_SEGMENT_RE = re.compile(
    r"(?<=/)(?:[0-9a-fA-F]{24}|[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})(?=/|$)"
)
_TEMPLATE_PARAM_RE = re.compile(r"\{[^{}]+\}")


def resolve_http_path_label(request: Request) -> str:
    """Label by route template when routing matched, else by the id-masked raw path."""
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(template, str) and template:
        return _TEMPLATE_PARAM_RE.sub("{id}", template)
    return _ID_SEGMENT_RE.sub("{id}", request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_action(action_type: str, status: str, duration: float) -> None:
    assistant_actions_total.labels(action_type=action_type, status=status).inc()
    assistant_action_duration_seconds.labels(action_type=action_type).observe(duration)


def observe_bulk_items(action_type: str, success_count: int, fail_count: int) -> None:
    if success_count > 0:
        assistant_bulk_items_total.labels(action_type=action_type, outcome="success").inc(success_count)
    if fail_count > 0:
        assistant_bulk_items_total.labels(action_type=action_type, outcome="failure").inc(fail_count)


def observe_parse_failure() -> None:
    assistant_parse_failures_total.inc()


def observe_stage_fallback() -> None:
    assistant_stage_fallbacks_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
