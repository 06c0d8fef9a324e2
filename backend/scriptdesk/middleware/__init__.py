"""Middleware modules for production-ready features"""
from scriptdesk.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_origin_rejection,
    record_rate_limit_decision,
    record_session_event,
)
from scriptdesk.middleware.rate_limit import limiter

__all__ = [
    "MonitoringMiddleware",
    "record_auth_failure",
    "record_origin_rejection",
    "record_rate_limit_decision",
    "record_session_event",
    "limiter",
]
