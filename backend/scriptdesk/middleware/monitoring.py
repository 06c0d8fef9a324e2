"""Monitoring and observability middleware"""
import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

from scriptdesk.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "scriptdesk_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "scriptdesk_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

# Identity metrics
session_events_total = Counter(
    "scriptdesk_session_events_total",
    "Session lifecycle events",
    ["event"]  # issued, refreshed, revoked, invalid, logout
)

rate_limit_decisions_total = Counter(
    "scriptdesk_rate_limit_decisions_total",
    "Persisted rate limiter decisions",
    ["scope", "allowed"]
)

origin_rejections_total = Counter(
    "scriptdesk_origin_rejections_total",
    "Mutating requests rejected by the same-origin guard"
)

authentication_failures_total = Counter(
    "scriptdesk_authentication_failures_total",
    "Total authentication failures",
    ["reason"]  # invalid, revoked, not_configured, credentials, verification
)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for monitoring and metrics collection"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics"""
        start_time = time.time()

        method = request.method

        # Add request ID for tracing
        request_id = request.headers.get("x-request-id", f"req_{int(time.time() * 1000)}")
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            duration = time.time() - start_time
            logger.error(
                f"Request failed: {method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": request.url.path,
                },
                exc_info=True
            )
            raise

        duration = time.time() - start_time
        status = response.status_code

        # Route template keeps label cardinality bounded (/users/{user_id}, not /users/42)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or "unmatched"

        http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

        if duration > 1.0:
            logger.warning(
                f"Slow request detected: {method} {endpoint}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": endpoint,
                    "status": status,
                }
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        return response


def record_session_event(event: str):
    session_events_total.labels(event=event).inc()


def record_rate_limit_decision(scope: str, allowed: bool):
    rate_limit_decisions_total.labels(scope=scope, allowed=str(allowed)).inc()


def record_origin_rejection():
    origin_rejections_total.inc()


def record_auth_failure(reason: str):
    """Record authentication failure"""
    authentication_failures_total.labels(reason=reason).inc()
