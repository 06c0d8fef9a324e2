"""Coarse per-IP request limiting.

An in-memory slowapi limiter caps raw request volume per client before any
handler runs. Action-level limits that must hold across instances (login,
session refresh, CAPTCHA exchange) use the persisted
:class:`scriptdesk.utils.rate_limiter.FixedWindowRateLimiter` instead.
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from scriptdesk.config import settings
from scriptdesk.utils.request import get_client_ip


def get_identifier(request: Request) -> str:
    """Client IP honouring CF-Connecting-IP and trusted proxies"""
    peer = request.client.host if request.client else None
    ip = get_client_ip(request.headers, peer, settings.trusted_proxy_ips)
    return ip or get_remote_address(request)


limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)
