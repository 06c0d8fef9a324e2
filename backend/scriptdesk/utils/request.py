"""Request inspection helpers: client IP and scheme behind proxies"""
import ipaddress
import json
from typing import Iterable, Mapping, Optional

from scriptdesk.utils.logger import logger


def first_header_value(value: Optional[str]) -> str:
    """First entry of a comma-separated header, stripped."""
    if not value:
        return ""
    return value.split(",")[0].strip()


def _is_valid_ip(ip_str: str) -> bool:
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(
    headers: Mapping[str, str],
    peer_host: Optional[str],
    trusted_proxy_ips: Iterable[str] = (),
) -> Optional[str]:
    """Best-effort client IP for rate-limit keys.

    Priority:
    1. CF-Connecting-IP (set by the Cloudflare edge)
    2. X-Real-IP, only when the direct peer is a trusted proxy
    3. The direct peer address
    """
    cf_ip = (headers.get("cf-connecting-ip") or "").strip()
    if cf_ip:
        if _is_valid_ip(cf_ip):
            return cf_ip
        logger.warning("Ignoring malformed CF-Connecting-IP header")

    if peer_host and peer_host in set(trusted_proxy_ips):
        real_ip = (headers.get("x-real-ip") or "").strip()
        if real_ip and _is_valid_ip(real_ip):
            return real_ip

    return peer_host or None


def _forwarded_proto(forwarded: str) -> Optional[str]:
    # Forwarded: for=1.2.3.4;proto=https;host=example.com
    for part in forwarded.split(";"):
        name, _, value = part.partition("=")
        if name.strip().lower() == "proto" and value.strip():
            return value.strip().strip('"').lower()
    return None


def _cf_visitor_scheme(cf_visitor: str) -> Optional[str]:
    # cf-visitor: {"scheme":"https"}
    try:
        data = json.loads(cf_visitor)
    except ValueError:
        return None
    scheme = data.get("scheme") if isinstance(data, dict) else None
    return scheme.lower() if isinstance(scheme, str) else None


def is_secure_request(headers: Mapping[str, str], url_scheme: str) -> bool:
    """Whether the client reached us over HTTPS, used for the cookie Secure flag."""
    proto = first_header_value(headers.get("x-forwarded-proto")).lower()
    if proto in ("https", "http"):
        return proto == "https"

    forwarded = headers.get("forwarded")
    if forwarded:
        proto = _forwarded_proto(forwarded)
        if proto in ("https", "http"):
            return proto == "https"

    cf_visitor = headers.get("cf-visitor")
    if cf_visitor:
        scheme = _cf_visitor_scheme(cf_visitor)
        if scheme in ("https", "http"):
            return scheme == "https"

    return url_scheme.lower() == "https"
