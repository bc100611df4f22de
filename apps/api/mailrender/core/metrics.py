from __future__ import annotations

from prometheus_client import Counter, Histogram

_HTTP_REQUESTS_TOTAL = Counter(
    "mailrender_http_requests_total",
    "Total HTTP requests handled by the API.",
    labelnames=("method", "path", "status_code"),
)
_HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "mailrender_http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "path"),
)
_MESSAGES_RENDERED_TOTAL = Counter(
    "mailrender_messages_rendered_total",
    "Messages pushed through the render pipeline.",
    labelnames=("outcome",),
)
_RENDER_DURATION_SECONDS = Histogram(
    "mailrender_render_duration_seconds",
    "Per-message render duration in seconds.",
)
_IMAGES_BLOCKED_TOTAL = Counter(
    "mailrender_images_blocked_total",
    "Images replaced by a placeholder.",
    labelnames=("reason",),
)
_INLINE_IMAGE_FETCH_TOTAL = Counter(
    "mailrender_inline_image_fetch_total",
    "Inline image attachment fetches.",
    labelnames=("outcome",),
)


def observe_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
) -> None:
    safe_path = path or "unknown"
    safe_method = method or "UNKNOWN"

    _HTTP_REQUESTS_TOTAL.labels(
        method=safe_method,
        path=safe_path,
        status_code=str(status_code),
    ).inc()
    _HTTP_REQUEST_DURATION_SECONDS.labels(method=safe_method, path=safe_path).observe(
        max(0.0, duration_ms / 1000.0)
    )


def observe_message_rendered(*, outcome: str, duration_seconds: float) -> None:
    _MESSAGES_RENDERED_TOTAL.labels(outcome=outcome).inc()
    _RENDER_DURATION_SECONDS.observe(max(0.0, duration_seconds))


def observe_image_blocked(*, reason: str) -> None:
    _IMAGES_BLOCKED_TOTAL.labels(reason=reason).inc()


def observe_inline_image_fetch(*, outcome: str) -> None:
    _INLINE_IMAGE_FETCH_TOTAL.labels(outcome=outcome).inc()
